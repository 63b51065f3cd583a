# SPDX-License-Identifier: MIT
"""Unit tests for traversal checks."""

import pytest

from wopigate.exceptions import MalformedIdentifierError
from wopigate.security import validate_object_key, validate_safe_path


class TestValidateSafePath:
    """Test path validation and traversal protection."""

    def test_valid_relative_path(self, storage_root):
        (storage_root / "docs").mkdir()
        result = validate_safe_path(storage_root.resolve(), "docs")
        assert result == (storage_root / "docs").resolve()

    def test_root_itself_allowed(self, storage_root):
        base = storage_root.resolve()
        assert validate_safe_path(base, ".") == base

    def test_missing_path_allowed(self, storage_root):
        base = storage_root.resolve()
        assert validate_safe_path(base, "new/file.pdf") == base / "new" / "file.pdf"

    @pytest.mark.parametrize(
        "attempt",
        [
            "../secret.pdf",
            "../../etc/passwd",
            "docs/../../outside.pdf",
            "/etc/passwd",
        ],
    )
    def test_traversal_rejected(self, storage_root, attempt):
        with pytest.raises(MalformedIdentifierError, match="path traversal detected"):
            validate_safe_path(storage_root.resolve(), attempt)

    def test_symlink_escaping_root_rejected(self, tmp_path, storage_root):
        outside = tmp_path / "outside"
        outside.mkdir()
        (storage_root / "link").symlink_to(outside)

        with pytest.raises(MalformedIdentifierError, match="path traversal detected"):
            validate_safe_path(storage_root.resolve(), "link")


class TestValidateObjectKey:
    """Test object key prefix checks."""

    def test_key_under_prefix(self):
        assert validate_object_key("wopi/", "wopi/docs/a.pdf") == "wopi/docs/a.pdf"

    def test_empty_prefix_accepts_any_relative_key(self):
        assert validate_object_key("", "docs/a.pdf") == "docs/a.pdf"

    def test_key_outside_prefix_rejected(self):
        with pytest.raises(MalformedIdentifierError, match="outside of prefix"):
            validate_object_key("wopi/", "other/a.pdf")

    @pytest.mark.parametrize("key", ["wopi/../secret.pdf", "wopi/docs/../../x.pdf"])
    def test_dot_dot_segments_rejected(self, key):
        with pytest.raises(MalformedIdentifierError, match="path traversal detected"):
            validate_object_key("wopi/", key)

    def test_leading_slash_rejected(self):
        with pytest.raises(MalformedIdentifierError):
            validate_object_key("", "/etc/passwd")

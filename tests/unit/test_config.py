# SPDX-License-Identifier: MIT
"""Unit tests for configuration management."""

import pytest
from pydantic import ValidationError

from wopigate.config import (
    SUPPORTED_EXTENSIONS,
    StorageOptions,
    get_base_dir,
    get_storage_options,
    load_storage_options,
    resolve_root_path,
)


@pytest.mark.unit
class TestLoadStorageOptions:
    """Test building StorageOptions from the environment."""

    def test_defaults(self):
        options = load_storage_options()

        assert options.provider == "filesystem"
        assert options.root_path == "wopi-docs"
        assert options.key_prefix == ""
        assert options.bucket_name is None
        assert options.extensions == SUPPORTED_EXTENSIONS

    def test_s3_options_from_env(self, monkeypatch):
        monkeypatch.setenv("WOPI_STORAGE_PROVIDER", "S3")
        monkeypatch.setenv("WOPI_S3_BUCKET", "documents")
        monkeypatch.setenv("WOPI_S3_REGION", "eu-central-1")
        monkeypatch.setenv("WOPI_S3_ACCESS_KEY", "AKIA")
        monkeypatch.setenv("WOPI_S3_SECRET_KEY", "s3cr3t")
        monkeypatch.setenv("WOPI_KEY_PREFIX", "/tenants/acme")

        options = load_storage_options()

        assert options.provider == "s3"
        assert options.bucket_name == "documents"
        assert options.region_name == "eu-central-1"
        assert options.key_prefix == "tenants/acme/"
        assert options.secret_key is not None
        assert options.secret_key.get_secret_value() == "s3cr3t"
        assert "s3cr3t" not in repr(options)

    def test_blank_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("WOPI_ROOT_PATH", "   ")
        assert load_storage_options().root_path == "wopi-docs"

    def test_extensions_list(self, monkeypatch):
        monkeypatch.setenv("WOPI_EXTENSIONS", ".PDF, docx,,odt")
        assert load_storage_options().extensions == frozenset({"pdf", "docx", "odt"})

    def test_unknown_provider_rejected(self, monkeypatch):
        monkeypatch.setenv("WOPI_STORAGE_PROVIDER", "ftp")
        with pytest.raises(RuntimeError, match="WOPI_STORAGE_PROVIDER"):
            load_storage_options()

    def test_empty_extensions_rejected(self, monkeypatch):
        monkeypatch.setenv("WOPI_EXTENSIONS", ",.,")
        with pytest.raises(RuntimeError, match="WOPI_EXTENSIONS"):
            load_storage_options()


@pytest.mark.unit
class TestStorageOptions:
    """Test StorageOptions normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("", ""), ("wopi", "wopi/"), ("wopi/", "wopi/"), ("/a/b", "a/b/")],
    )
    def test_key_prefix_normalized(self, raw, expected):
        assert StorageOptions(key_prefix=raw).key_prefix == expected

    def test_options_are_frozen(self):
        options = StorageOptions()
        with pytest.raises(ValidationError):
            options.root_path = "elsewhere"  # type: ignore[misc]


@pytest.mark.unit
class TestCaching:
    """Test that configuration is resolved once."""

    def test_storage_options_cached(self, monkeypatch):
        monkeypatch.setenv("WOPI_ROOT_PATH", "first")
        first = get_storage_options()
        monkeypatch.setenv("WOPI_ROOT_PATH", "second")
        assert get_storage_options() is first

    def test_base_dir_cached(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WOPI_BASE_DIR", str(tmp_path))
        first = get_base_dir()
        monkeypatch.setenv("WOPI_BASE_DIR", str(tmp_path / "other"))
        assert get_base_dir() == first == tmp_path.resolve()


@pytest.mark.unit
class TestRootPaths:
    """Test base directory and root path resolution."""

    def test_base_dir_defaults_to_cwd(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert get_base_dir() == tmp_path.resolve()

    def test_base_dir_must_be_directory(self, monkeypatch, tmp_path):
        not_dir = tmp_path / "file.txt"
        not_dir.write_text("x")
        monkeypatch.setenv("WOPI_BASE_DIR", str(not_dir))
        with pytest.raises(RuntimeError, match="not a directory"):
            get_base_dir()

    def test_relative_root_anchored_to_base_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WOPI_BASE_DIR", str(tmp_path))
        assert resolve_root_path("docs") == (tmp_path / "docs").resolve()

    def test_absolute_root_unchanged(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WOPI_BASE_DIR", str(tmp_path / "ignored"))
        target = tmp_path / "absolute"
        assert resolve_root_path(target) == target.resolve()

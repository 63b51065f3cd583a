# SPDX-License-Identifier: MIT
"""Shared pytest fixtures for wopigate tests."""

import pathlib

import pytest

from wopigate.config import get_base_dir, get_storage_options
from wopigate.storage.factory import get_storage
from wopigate.storage.filesystem import FileSystemStorageBackend

_WOPI_ENV_VARS = (
    "WOPI_STORAGE_PROVIDER",
    "WOPI_ROOT_PATH",
    "WOPI_KEY_PREFIX",
    "WOPI_S3_BUCKET",
    "WOPI_S3_REGION",
    "WOPI_S3_ACCESS_KEY",
    "WOPI_S3_SECRET_KEY",
    "WOPI_S3_ENDPOINT_URL",
    "WOPI_EXTENSIONS",
    "WOPI_BASE_DIR",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Clear WOPI_* env vars and cached config so every test starts clean."""
    for name in _WOPI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_storage_options.cache_clear()
    get_base_dir.cache_clear()
    get_storage.cache_clear()
    yield
    get_storage_options.cache_clear()
    get_base_dir.cache_clear()
    get_storage.cache_clear()


@pytest.fixture
def storage_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Create a temporary storage root directory."""
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def fs_backend(storage_root: pathlib.Path) -> FileSystemStorageBackend:
    """Filesystem backend over ``storage_root`` with a fixed owner."""
    return FileSystemStorageBackend(storage_root, owner_resolver=lambda st: "tester")


@pytest.fixture
def populated_root(storage_root: pathlib.Path) -> pathlib.Path:
    """Storage root with a small document tree.

    Layout::

        data/
          readme.docx
          budget.xlsx
          docs/
            report.pdf
            drafts/
          empty/
    """
    (storage_root / "readme.docx").write_bytes(b"README")
    (storage_root / "budget.xlsx").write_bytes(b"BUDGET-DATA")
    docs = storage_root / "docs"
    docs.mkdir()
    (docs / "report.pdf").write_bytes(b"%PDF-1.7 report")
    (docs / "drafts").mkdir()
    (storage_root / "empty").mkdir()
    return storage_root

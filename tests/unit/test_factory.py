# SPDX-License-Identifier: MIT
"""Unit tests for the storage backend factory."""

import pytest

from wopigate.exceptions import BackendUnavailableError
from wopigate.storage import get_storage
from wopigate.storage.filesystem import FileSystemStorageBackend
from wopigate.storage.s3 import S3StorageBackend


@pytest.mark.unit
def test_filesystem_is_default(monkeypatch, tmp_path):
    monkeypatch.setenv("WOPI_ROOT_PATH", str(tmp_path / "docs"))

    backend = get_storage()

    assert isinstance(backend, FileSystemStorageBackend)
    assert backend.root_dir == (tmp_path / "docs").resolve()


@pytest.mark.unit
def test_storage_is_cached(monkeypatch, tmp_path):
    monkeypatch.setenv("WOPI_ROOT_PATH", str(tmp_path))
    assert get_storage() is get_storage()


@pytest.mark.unit
def test_s3_backend_selected(monkeypatch, mocker):
    monkeypatch.setenv("WOPI_STORAGE_PROVIDER", "s3")
    monkeypatch.setenv("WOPI_S3_BUCKET", "documents")
    monkeypatch.setenv("WOPI_KEY_PREFIX", "wopi")
    session_cls = mocker.patch("wopigate.storage.s3.boto3.session.Session")
    session_cls.return_value.client.return_value.get_bucket_acl.return_value = {"Owner": {"ID": "owner"}}
    register = mocker.patch("wopigate.storage.factory.atexit.register")

    backend = get_storage()

    assert isinstance(backend, S3StorageBackend)
    assert backend.owner_id == "owner"
    register.assert_called_once()


@pytest.mark.unit
def test_s3_without_bucket_fails_fast(monkeypatch):
    monkeypatch.setenv("WOPI_STORAGE_PROVIDER", "s3")
    with pytest.raises(BackendUnavailableError):
        get_storage()

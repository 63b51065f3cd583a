# SPDX-License-Identifier: MIT
"""Storage backend factory.

Reads ``WOPI_STORAGE_PROVIDER`` (default ``"filesystem"``) through
:func:`~wopigate.config.get_storage_options` and returns the appropriate
singleton backend instance.
"""

from __future__ import annotations

import atexit
import logging
from functools import lru_cache

from ..config import get_storage_options
from .filesystem import FileSystemStorageBackend
from .protocol import StorageBackend

logger = logging.getLogger("wopigate")


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    """Return the configured :class:`StorageBackend` (cached singleton).

    The boto3 client used by the S3 backend is closed automatically at
    process exit via :func:`atexit`.

    Configuration
    -------------
    ``WOPI_STORAGE_PROVIDER``
        ``"filesystem"`` (default) – documents under ``WOPI_ROOT_PATH``.
        ``"s3"`` – documents in ``WOPI_S3_BUCKET`` under ``WOPI_KEY_PREFIX``.

    Raises:
        BackendUnavailableError: If the selected backend cannot start.
        RuntimeError: If the provider name is unknown.
    """
    options = get_storage_options()

    if options.provider == "filesystem":
        return FileSystemStorageBackend(options.root_path)

    if options.provider == "s3":
        from .s3 import S3StorageBackend

        backend = S3StorageBackend(options)
        _register_cleanup(backend)
        return backend

    raise RuntimeError(f"Unknown WOPI_STORAGE_PROVIDER: {options.provider!r}. Use 'filesystem' or 's3'.")


def _register_cleanup(backend: StorageBackend) -> None:
    """Register an atexit handler to close the backend's client."""

    def _cleanup() -> None:
        import asyncio

        try:
            loop = asyncio.get_running_loop()
            loop.create_task(backend.aclose())
        except RuntimeError:
            # No running loop, run synchronously
            asyncio.run(backend.aclose())
        logger.debug("Storage backend client closed")

    atexit.register(_cleanup)

# SPDX-License-Identifier: MIT
"""Pluggable document storage for wopigate.

The storage layer hides native paths behind opaque identifiers so the WOPI
protocol layer works the same over a local directory tree or an S3 bucket.

Usage::

    from wopigate.storage import get_storage

    storage = get_storage()
    for file in await storage.list_files(storage.root.identifier):
        print(file.name, file.length)

    async with storage.read_stream(file.identifier) as chunks:
        async for chunk in chunks:
            ...
"""

from .factory import get_storage
from .protocol import File, Folder, StorageBackend

__all__ = ["File", "Folder", "StorageBackend", "get_storage"]

# SPDX-License-Identifier: MIT
"""Storage backend protocol and shared descriptor types.

Defines the interface that all storage backends must implement.  Backends
are addressed exclusively through opaque identifiers produced by
:mod:`wopigate.identifiers`; an empty identifier means the root container.
"""

from __future__ import annotations

import datetime
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KB


@dataclass(frozen=True)
class File:
    """Metadata about a stored file, read from the backend at query time.

    Two descriptors with the same identifier compare equal.
    """

    identifier: str
    name: str = field(compare=False)
    extension: str = field(compare=False)
    length: int = field(compare=False)
    last_write_time_utc: datetime.datetime = field(compare=False)
    owner: str = field(compare=False)
    checksum: str | None = field(default=None, compare=False)
    exists: bool = field(default=True, compare=False)


@dataclass(frozen=True)
class Folder:
    """A container of files and folders."""

    identifier: str
    name: str = field(compare=False)


def split_extension(name: str) -> str:
    """Extension of *name* without the leading dot (``""`` when there is none)."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return ""
    return ext


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for pluggable document storage.

    Implementations decode identifiers, enforce traversal checks, and
    translate native errors into :mod:`wopigate.exceptions`.
    """

    @property
    def root(self) -> Folder:
        """The root container configured for this backend (no I/O)."""
        ...

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    async def get_file(self, identifier: str, *, checksum: bool = True) -> File:
        """Describe a file.

        Args:
            identifier: File identifier.
            checksum: Whether to populate :attr:`File.checksum`.  Backends
                that must read the whole file to hash it skip that work
                when ``False``.

        Raises:
            NotFoundError: If no such file exists or it is a folder.
            MalformedIdentifierError: If the identifier is invalid.
        """
        ...

    async def get_folder(self, identifier: str = "") -> Folder:
        """Describe a folder; always succeeds for the root.

        Raises:
            NotFoundError: If the folder does not exist.
            RootUnavailableError: If the root cannot be resolved.
        """
        ...

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(self, identifier: str = "", *, checksum: bool = False) -> list[File]:
        """Direct child files of a folder, sorted by name."""
        ...

    async def list_folders(self, identifier: str = "") -> list[Folder]:
        """Direct child folders of a folder, sorted by name."""
        ...

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def read_stream(
        self, identifier: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Return a context manager yielding the file content as byte chunks.

        The underlying handle is released when the context exits.

        Raises:
            NotFoundError: If the file vanished before it could be opened.
        """
        ...

    async def write_stream(self, identifier: str, chunks: AsyncIterator[bytes]) -> None:
        """Replace the content of an existing file.

        Either the full new content becomes visible or the previous content
        is kept and :class:`~wopigate.exceptions.IoFailureError` is raised.

        Raises:
            NotFoundError: If the file does not exist.
            IoFailureError: If the transfer fails.
        """
        ...

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Release backend resources."""
        ...

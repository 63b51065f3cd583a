# SPDX-License-Identifier: MIT
"""Local filesystem storage backend.

Identifiers decode to POSIX paths relative to a configured root directory;
the root itself is ``"."``.  Content hashes are computed on demand by
streaming the file through SHA-256.
"""

from __future__ import annotations

import base64
import datetime
import functools
import hashlib
import logging
import os
import pathlib
import stat
import tempfile
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager, suppress

import aiofiles
import aiofiles.os
import anyio

from ..config import get_storage_options, resolve_root_path
from ..exceptions import IoFailureError, MalformedIdentifierError, NotFoundError, RootUnavailableError
from ..identifiers import decode_identifier, encode_identifier
from ..security import validate_safe_path
from .protocol import DEFAULT_CHUNK_SIZE, File, Folder, split_extension

logger = logging.getLogger("wopigate")

ROOT_PATH = "."
UNSUPPORTED_OWNER = "UNSUPPORTED_PLATFORM"

# In-flight writes are staged beside the target under this name; listings skip them.
TEMP_PREFIX = ".wopigate-"
TEMP_SUFFIX = ".tmp"

OwnerResolver = Callable[[os.stat_result], str]
"""Maps a stat result to an owner string; must not raise."""


# ------------------------------------------------------------------
# Owner resolution
# ------------------------------------------------------------------


def _unsupported_owner(st: os.stat_result) -> str:
    return UNSUPPORTED_OWNER


def select_owner_resolver() -> OwnerResolver:
    """Pick the owner resolver for the current platform.

    POSIX systems report the user name owning the file (or the numeric uid
    when it has no passwd entry).  Other platforms report
    :data:`UNSUPPORTED_OWNER`.
    """
    try:
        import pwd
    except ImportError:
        logger.info("File owner lookup not supported on this platform")
        return _unsupported_owner

    def _posix_owner(st: os.stat_result) -> str:
        try:
            return pwd.getpwuid(st.st_uid).pw_name
        except KeyError:
            return str(st.st_uid)

    return _posix_owner


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _child_path(folder_path: str, name: str) -> str:
    return str(pathlib.PurePosixPath(folder_path) / name)


def _is_temp_name(name: str) -> bool:
    return name.startswith(TEMP_PREFIX) and name.endswith(TEMP_SUFFIX)


def _mtime_utc(st: os.stat_result) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(st.st_mtime, tz=datetime.timezone.utc)


async def _sha256_base64(path: pathlib.Path) -> str:
    """Stream *path* through a fresh SHA-256 digest."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(DEFAULT_CHUNK_SIZE):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


class FileSystemStorageBackend:
    """Document storage rooted at a local directory.

    Args:
        root_path: Storage root.  Relative paths are anchored to the
            application base directory.  Defaults to ``WOPI_ROOT_PATH``.
        owner_resolver: Override the platform owner resolver (tests).
    """

    def __init__(
        self,
        root_path: str | pathlib.Path | None = None,
        owner_resolver: OwnerResolver | None = None,
    ) -> None:
        if root_path is None:
            root_path = get_storage_options().root_path
        self._root_dir = resolve_root_path(root_path)
        self._owner_resolver = owner_resolver or select_owner_resolver()
        self._root = Folder(identifier=encode_identifier(ROOT_PATH), name=self._root_dir.name)
        logger.info("Filesystem storage rooted at %s", self._root_dir)

    @property
    def root(self) -> Folder:
        return self._root

    @property
    def root_dir(self) -> pathlib.Path:
        return self._root_dir

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _relative(self, identifier: str) -> str:
        """Decode *identifier* into a root-relative path.

        Only normalized paths are accepted so each entry has exactly one identifier.
        """
        path = decode_identifier(identifier) if identifier else ROOT_PATH
        if not path:
            return ROOT_PATH
        if str(pathlib.PurePosixPath(path)) != path:
            raise MalformedIdentifierError(f"Identifier does not name a normalized path: {identifier!r}")
        return path

    def _resolve(self, relative: str) -> pathlib.Path:
        return validate_safe_path(self._root_dir, relative)

    def _inside_root(self, path: str) -> bool:
        try:
            return pathlib.Path(path).resolve().is_relative_to(self._root_dir)
        except (OSError, RuntimeError):
            return False

    async def _ensure_root(self) -> None:
        if await aiofiles.os.path.isdir(self._root_dir):
            return
        try:
            await aiofiles.os.makedirs(self._root_dir, exist_ok=True)
            logger.info("Created storage root %s", self._root_dir)
        except FileExistsError as e:
            raise RootUnavailableError(f"Storage root is not a directory: {self._root_dir}") from e
        except OSError as e:
            raise RootUnavailableError(f"Cannot create storage root {self._root_dir}: {e}") from e

    async def _stat(self, path: pathlib.Path, relative: str) -> os.stat_result:
        try:
            return await aiofiles.os.stat(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"Not found: {relative}") from e
        except OSError as e:
            raise IoFailureError(f"Cannot stat {relative}: {e}") from e

    async def _describe_file(self, relative: str, path: pathlib.Path, st: os.stat_result, checksum: bool) -> File:
        digest = None
        if checksum:
            try:
                digest = await _sha256_base64(path)
            except FileNotFoundError as e:
                raise NotFoundError(f"File not found: {relative}") from e
            except OSError as e:
                raise IoFailureError(f"Cannot hash {relative}: {e}") from e
        # Named after the identifier's own path; *path* may be a resolved symlink target
        name = pathlib.PurePosixPath(relative).name
        return File(
            identifier=encode_identifier(relative),
            name=name,
            extension=split_extension(name),
            length=st.st_size,
            last_write_time_utc=_mtime_utc(st),
            owner=self._owner_resolver(st),
            checksum=digest,
        )

    async def _folder_dir(self, identifier: str) -> tuple[str, pathlib.Path]:
        relative = self._relative(identifier)
        path = self._resolve(relative)
        if relative == ROOT_PATH:
            await self._ensure_root()
            return relative, path
        st = await self._stat(path, relative)
        if not stat.S_ISDIR(st.st_mode):
            raise NotFoundError(f"Folder not found: {relative}")
        return relative, path

    async def _scan(self, identifier: str) -> tuple[str, list[tuple[str, os.stat_result]]]:
        """Stat the direct children of a folder, sorted by name."""
        relative, path = await self._folder_dir(identifier)

        def _entries() -> list[tuple[str, os.stat_result]]:
            results = []
            with os.scandir(path) as it:
                for entry in it:
                    if _is_temp_name(entry.name):
                        continue
                    if entry.is_symlink() and not self._inside_root(entry.path):
                        logger.debug("Skipping symlink leaving the storage root: %s", entry.path)
                        continue
                    try:
                        results.append((entry.name, entry.stat()))
                    except OSError as e:
                        logger.warning("Skipping unreadable entry %s: %s", entry.path, e)
            return sorted(results, key=lambda item: item[0])

        try:
            entries = await anyio.to_thread.run_sync(_entries)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"Folder not found: {relative}") from e
        except OSError as e:
            raise IoFailureError(f"Cannot list {relative}: {e}") from e
        return relative, entries

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    async def get_file(self, identifier: str, *, checksum: bool = True) -> File:
        relative = self._relative(identifier)
        path = self._resolve(relative)
        st = await self._stat(path, relative)
        if not stat.S_ISREG(st.st_mode):
            raise NotFoundError(f"File not found: {relative}")
        return await self._describe_file(relative, path, st, checksum)

    async def get_folder(self, identifier: str = "") -> Folder:
        relative, path = await self._folder_dir(identifier)
        if relative == ROOT_PATH:
            return self._root
        return Folder(identifier=encode_identifier(relative), name=pathlib.PurePosixPath(relative).name)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(self, identifier: str = "", *, checksum: bool = False) -> list[File]:
        relative, entries = await self._scan(identifier)
        folder_dir = self._resolve(relative)
        files = []
        for name, st in entries:
            if not stat.S_ISREG(st.st_mode):
                continue
            child = _child_path(relative, name)
            files.append(await self._describe_file(child, folder_dir / name, st, checksum))
        logger.debug("Listed %d file(s) in %s", len(files), relative)
        return files

    async def list_folders(self, identifier: str = "") -> list[Folder]:
        relative, entries = await self._scan(identifier)
        folders = [
            Folder(identifier=encode_identifier(_child_path(relative, name)), name=name)
            for name, st in entries
            if stat.S_ISDIR(st.st_mode)
        ]
        logger.debug("Listed %d folder(s) in %s", len(folders), relative)
        return folders

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def _existing_file(self, identifier: str) -> tuple[str, pathlib.Path]:
        relative = self._relative(identifier)
        path = self._resolve(relative)
        st = await self._stat(path, relative)
        if not stat.S_ISREG(st.st_mode):
            raise NotFoundError(f"File not found: {relative}")
        return relative, path

    @asynccontextmanager
    async def read_stream(self, identifier: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Yield an async iterator over the file's bytes; the file is closed on exit."""
        relative, path = await self._existing_file(identifier)
        try:
            f = await aiofiles.open(path, "rb")
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {relative}") from e
        except OSError as e:
            raise IoFailureError(f"Cannot open {relative}: {e}") from e

        async def _chunks() -> AsyncIterator[bytes]:
            try:
                while chunk := await f.read(chunk_size):
                    yield chunk
            except OSError as e:
                raise IoFailureError(f"Read failed for {relative}: {e}") from e

        try:
            logger.debug("Reading %s", relative)
            yield _chunks()
        finally:
            await f.close()

    async def write_stream(self, identifier: str, chunks: AsyncIterator[bytes]) -> None:
        """Replace file content via a temp file in the same directory and an atomic rename."""
        relative, path = await self._existing_file(identifier)

        mkstemp = functools.partial(
            tempfile.mkstemp, prefix=f"{TEMP_PREFIX}{path.name}.", suffix=TEMP_SUFFIX, dir=path.parent
        )
        try:
            fd, tmp_name = await anyio.to_thread.run_sync(mkstemp)
            await anyio.to_thread.run_sync(os.close, fd)
        except OSError as e:
            raise IoFailureError(f"Cannot stage write for {relative}: {e}") from e
        tmp_path = pathlib.Path(tmp_name)
        try:
            try:
                async with aiofiles.open(tmp_path, "wb") as f:
                    async for chunk in chunks:
                        await f.write(chunk)
                # mkstemp creates 0600; keep the original file's mode
                mode = stat.S_IMODE((await aiofiles.os.stat(path)).st_mode)
                await anyio.to_thread.run_sync(os.chmod, tmp_path, mode)
                await aiofiles.os.replace(tmp_path, path)
            except OSError as e:
                raise IoFailureError(f"Write failed for {relative}: {e}") from e
        finally:
            # Gone already when the rename succeeded
            with suppress(FileNotFoundError):
                await aiofiles.os.remove(tmp_path)
        logger.debug("Wrote %s", relative)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Nothing to release; present for protocol conformance."""

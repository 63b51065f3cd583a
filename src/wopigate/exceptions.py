# SPDX-License-Identifier: MIT
"""Exception hierarchy for the storage layer.

``NotFoundError`` and ``MalformedIdentifierError`` are client-triggerable
and map to distinct protocol responses; the rest are server-side failures.
"""


class StorageError(Exception):
    """Base exception for all wopigate storage errors."""


class NotFoundError(StorageError, LookupError):
    """The file or folder does not exist at query time."""


class MalformedIdentifierError(StorageError, ValueError):
    """The identifier is not valid codec output or escapes the storage root."""


class RootUnavailableError(StorageError, RuntimeError):
    """The backend cannot resolve or create its root container."""


class BackendUnavailableError(StorageError, RuntimeError):
    """The backend cannot be constructed or cannot reach its storage target."""


class IoFailureError(StorageError, OSError):
    """A read or write failed while transferring content."""

# SPDX-License-Identifier: MIT
"""Traversal checks applied after an identifier has been decoded."""

from __future__ import annotations

import pathlib

from .exceptions import MalformedIdentifierError


def validate_safe_path(base_path: pathlib.Path, relative: str) -> pathlib.Path:
    """Resolve *relative* under *base_path* and reject anything that escapes it.

    Args:
        base_path: Resolved storage root.
        relative: Root-relative path decoded from an identifier.

    Returns:
        Absolute resolved path inside *base_path*.

    Raises:
        MalformedIdentifierError: If the path is absolute or resolves outside *base_path*.
    """
    candidate = pathlib.PurePosixPath(relative)
    if candidate.is_absolute():
        raise MalformedIdentifierError(f"Invalid path {relative!r}: path traversal detected")

    try:
        resolved = (base_path / candidate).resolve()
    except (OSError, RuntimeError) as e:
        raise MalformedIdentifierError(f"Invalid path {relative!r}: {e}") from e

    try:
        resolved.relative_to(base_path)
    except ValueError as e:
        raise MalformedIdentifierError(f"Invalid path {relative!r}: path traversal detected") from e
    return resolved


def validate_object_key(prefix: str, key: str) -> str:
    """Check that an object key lives under *prefix* and has no ``..`` segments.

    Raises:
        MalformedIdentifierError: If the key escapes the prefix.
    """
    if not key.startswith(prefix):
        raise MalformedIdentifierError(f"Invalid key {key!r}: outside of prefix {prefix!r}")
    if key.startswith("/") or ".." in key.split("/"):
        raise MalformedIdentifierError(f"Invalid key {key!r}: path traversal detected")
    return key

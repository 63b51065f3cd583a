# SPDX-License-Identifier: MIT
"""Opaque identifier codec.

A native backend path (a root-relative file path or a full object key) is
turned into an unpadded URL-safe base64 string of its UTF-8 bytes.  The
output alphabet is ``A-Z a-z 0-9 - _`` so identifiers can be dropped into
a URL path segment without escaping.

Decoding is strict: anything :func:`encode_identifier` could not have
produced raises :class:`~wopigate.exceptions.MalformedIdentifierError`.
"""

from __future__ import annotations

import base64
import binascii
import re

from .exceptions import MalformedIdentifierError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]*$")


def encode_identifier(path: str) -> str:
    """Encode a native path into an opaque, URL-safe identifier."""
    return base64.urlsafe_b64encode(path.encode("utf-8")).rstrip(b"=").decode("ascii")


def decode_identifier(identifier: str) -> str:
    """Decode an identifier back to the native path that produced it.

    Raises:
        MalformedIdentifierError: If *identifier* is not canonical codec output.
    """
    if not _IDENTIFIER_RE.match(identifier):
        raise MalformedIdentifierError(f"Identifier contains invalid characters: {identifier!r}")
    if len(identifier) % 4 == 1:
        raise MalformedIdentifierError(f"Identifier has invalid length: {identifier!r}")

    padded = identifier + "=" * (-len(identifier) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        path = raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MalformedIdentifierError(f"Identifier is not valid: {identifier!r}") from e

    # Non-zero trailing bits decode fine but would give two identifiers for one path
    if encode_identifier(path) != identifier:
        raise MalformedIdentifierError(f"Identifier is not canonical: {identifier!r}")
    if "\x00" in path:
        raise MalformedIdentifierError(f"Identifier decodes to a path with NUL bytes: {identifier!r}")
    return path

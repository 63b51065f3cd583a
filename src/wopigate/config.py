# SPDX-License-Identifier: MIT
"""Configuration management for the wopigate storage layer.

This module handles:
- Logging setup
- The storage options block shared by every backend
- The application base directory used to anchor relative roots
"""

import logging
import os
import pathlib
import sys
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, SecretStr, ValidationError, field_validator

# ---------- Logging configuration ----------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("wopigate")

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({"pdf", "docx", "xlsx", "pptx"})
"""Document types visible through the object-store backend."""


# ---------- Storage options ----------
class StorageOptions(BaseModel, frozen=True):
    """Options block consumed by every storage backend.

    Backends read the fields they need and ignore the rest, so one block
    configures either ``filesystem`` or ``s3`` without changing shape.
    """

    provider: Literal["filesystem", "s3"] = "filesystem"
    root_path: str = "wopi-docs"
    key_prefix: str = ""
    bucket_name: str | None = None
    region_name: str | None = None
    access_key: SecretStr | None = None
    secret_key: SecretStr | None = None
    endpoint_url: str | None = None
    extensions: frozenset[str] = SUPPORTED_EXTENSIONS

    @field_validator("key_prefix")
    @classmethod
    def _normalize_prefix(cls, v: str) -> str:
        v = v.strip().lstrip("/")
        if v and not v.endswith("/"):
            v += "/"
        return v

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, v: frozenset[str]) -> frozenset[str]:
        normalized = frozenset(ext.strip().lstrip(".").lower() for ext in v if ext.strip().lstrip("."))
        if not normalized:
            raise ValueError("at least one extension is required")
        return normalized


# Mapping from StorageOptions field to environment variable
_OPTION_ENV_VARS: dict[str, str] = {
    "provider": "WOPI_STORAGE_PROVIDER",
    "root_path": "WOPI_ROOT_PATH",
    "key_prefix": "WOPI_KEY_PREFIX",
    "bucket_name": "WOPI_S3_BUCKET",
    "region_name": "WOPI_S3_REGION",
    "access_key": "WOPI_S3_ACCESS_KEY",
    "secret_key": "WOPI_S3_SECRET_KEY",
    "endpoint_url": "WOPI_S3_ENDPOINT_URL",
    "extensions": "WOPI_EXTENSIONS",
}


def load_storage_options() -> StorageOptions:
    """Build :class:`StorageOptions` from ``WOPI_*`` environment variables.

    Unset or blank variables fall back to the model defaults.

    Raises:
        RuntimeError: If a variable holds an invalid value.
    """
    values: dict[str, object] = {}
    for field, env_var in _OPTION_ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw is None or not raw.strip():
            continue
        raw = raw.strip()
        if field == "provider":
            values[field] = raw.lower()
        elif field == "extensions":
            values[field] = frozenset(raw.split(","))
        else:
            values[field] = raw

    try:
        return StorageOptions(**values)
    except ValidationError as e:
        bad = ", ".join(_OPTION_ENV_VARS.get(str(err["loc"][0]), str(err["loc"][0])) for err in e.errors())
        raise RuntimeError(f"Invalid storage configuration ({bad}): {e}") from e


@lru_cache(maxsize=1)
def get_storage_options() -> StorageOptions:
    """Return the process-wide :class:`StorageOptions` (cached)."""
    load_dotenv()  # values already in the environment win
    return load_storage_options()


# ---------- Base directory ----------
@lru_cache(maxsize=1)
def get_base_dir() -> pathlib.Path:
    """Application base directory that relative storage roots are resolved against.

    Uses ``WOPI_BASE_DIR`` when set, otherwise the working directory at first
    call.  Resolved once per process.

    Raises:
        RuntimeError: If ``WOPI_BASE_DIR`` points at something that is not a directory.
    """
    raw = os.getenv("WOPI_BASE_DIR", "").strip()
    if not raw:
        return pathlib.Path.cwd().resolve()

    try:
        path = pathlib.Path(raw).expanduser().resolve()
    except (ValueError, OSError) as e:
        raise RuntimeError(f"Invalid WOPI_BASE_DIR '{raw}': {e}") from e
    if path.exists() and not path.is_dir():
        raise RuntimeError(f"WOPI_BASE_DIR is not a directory: {path}")
    return path


def resolve_root_path(root_path: str | pathlib.Path) -> pathlib.Path:
    """Anchor *root_path* to :func:`get_base_dir` when relative, then resolve it."""
    path = pathlib.Path(root_path).expanduser()
    if not path.is_absolute():
        path = get_base_dir() / path
    return path.resolve()

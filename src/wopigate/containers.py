# SPDX-License-Identifier: MIT
"""WOPI container payloads built on top of a :class:`StorageBackend`.

Provides the bodies for three WOPI operations:
- CheckContainerInfo: ``GET /wopi/containers/{id}``
- EnumerateChildren: ``GET /wopi/containers/{id}/children``
- GetRootContainer: ``GET /wopi/ecosystem/root_container_pointer``

Routing, access-token validation and serialization belong to the web layer.
"""

import datetime
from typing import Literal, TypedDict
from urllib.parse import quote, urlencode

from .config import logger
from .storage.protocol import StorageBackend

ResourceType = Literal["files", "containers"]


class CheckContainerInfo(TypedDict):
    """Result of CheckContainerInfo."""

    Name: str


class ChildFile(TypedDict):
    """One file entry in EnumerateChildren."""

    Name: str
    Url: str
    LastModifiedTime: str  # ISO-8601 UTC
    Size: int
    Version: str


class ChildContainer(TypedDict):
    """One container entry in EnumerateChildren or GetRootContainer."""

    Name: str
    Url: str


class ContainerChildren(TypedDict):
    """Result of EnumerateChildren."""

    ChildFiles: list[ChildFile]
    ChildContainers: list[ChildContainer]


class RootContainerInfo(TypedDict):
    """Result of GetRootContainer."""

    ContainerPointer: ChildContainer


def build_wopi_url(base_url: str, resource: ResourceType, identifier: str, access_token: str | None = None) -> str:
    """Build ``{base_url}/wopi/{resource}/{identifier}`` with an optional access token.

    Identifiers are URL-safe already; ``quote`` only guards against values
    that did not come from the codec.
    """
    url = f"{base_url.rstrip('/')}/wopi/{resource}/{quote(identifier, safe='')}"
    if access_token:
        url += "?" + urlencode({"access_token": access_token})
    return url


def _format_version(timestamp: datetime.datetime) -> str:
    return timestamp.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


async def check_container_info(storage: StorageBackend, identifier: str) -> CheckContainerInfo:
    """Describe a container by identifier."""
    folder = await storage.get_folder(identifier)
    return {"Name": folder.name}


async def enumerate_children(
    storage: StorageBackend,
    identifier: str,
    base_url: str,
    access_token: str | None = None,
) -> ContainerChildren:
    """List the files and sub-containers of a container."""
    files = await storage.list_files(identifier)
    folders = await storage.list_folders(identifier)

    child_files: list[ChildFile] = [
        {
            "Name": f.name,
            "Url": build_wopi_url(base_url, "files", f.identifier, access_token),
            "LastModifiedTime": f.last_write_time_utc.astimezone(datetime.timezone.utc).isoformat(),
            "Size": f.length,
            "Version": _format_version(f.last_write_time_utc),
        }
        for f in files
    ]
    child_containers: list[ChildContainer] = [
        {"Name": d.name, "Url": build_wopi_url(base_url, "containers", d.identifier, access_token)} for d in folders
    ]
    logger.debug("Enumerated %d file(s), %d container(s)", len(child_files), len(child_containers))
    return {"ChildFiles": child_files, "ChildContainers": child_containers}


async def get_root_container(
    storage: StorageBackend,
    base_url: str,
    access_token: str | None = None,
) -> RootContainerInfo:
    """Pointer to the backend's root container."""
    root = await storage.get_folder(storage.root.identifier)
    return {
        "ContainerPointer": {
            "Name": root.name,
            "Url": build_wopi_url(base_url, "containers", root.identifier, access_token),
        }
    }

"""Object storage wrapper for truck images.

Objects live under ``{tuuid}/{slot}.{ext}`` in a single public bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict

from fleetdesk._constants import STORAGE_LIST_LIMIT
from fleetdesk._transport import Transport
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetDeskError, UploadError

_logger = logging.getLogger(__name__)

_CACHE_CONTROL = "max-age=3600"


class FileEntry(BaseModel):
    """One object returned by a prefix listing."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    id: str | None = None
    metadata: dict[str, Any] | None = None


def clean_prefix(prefix: str) -> str:
    """Trim whitespace and leading/trailing slashes from a folder prefix."""
    return prefix.strip().strip("/")


def path_from_public_url(url: str, bucket: str) -> str | None:
    """Recover the object path from a public URL, or ``None`` when *url* is not in *bucket*.

    Examples
    --------
    >>> path_from_public_url("https://x.co/storage/v1/object/public/truckimages/ab/main_image.jpg?t=1", "truckimages")
    'ab/main_image.jpg'
    """
    marker = f"/{bucket}/"
    if not url or marker not in url:
        return None
    path = url.split(marker, 1)[1].split("?", 1)[0].split("#", 1)[0]
    return unquote(path) or None


class ObjectStore:
    """Put, list and remove objects in one bucket.

    Every failure is raised as :class:`UploadError` with the affected path.
    """

    def __init__(self, transport: Transport, config: FleetDeskConfig, bucket: str | None = None) -> None:
        self._transport = transport
        self._config = config
        self._bucket = bucket or config.image_bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def _object_url(self, path: str) -> str:
        return f"{self._config.storage_url}/object/{self._bucket}/{quote(path, safe='/')}"

    def public_url(self, path: str) -> str:
        """Public URL for *path*.  Pure; no request is made."""
        return f"{self._config.storage_url}/object/public/{self._bucket}/{quote(path, safe='/')}"

    async def put(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        *,
        upsert: bool = True,
    ) -> str:
        """Upload *content* to *path*.  Returns the stored path."""
        headers = {
            "content-type": content_type,
            "cache-control": _CACHE_CONTROL,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            await self._transport.request("POST", self._object_url(path), data=content, headers=headers)
        except FleetDeskError as exc:
            raise UploadError(f"Upload of {path} to {self._bucket} failed: {exc}", path=path) from exc
        _logger.debug("Uploaded %s (%d bytes) to %s", path, len(content), self._bucket)
        return path

    async def list(self, prefix: str) -> list[FileEntry]:
        """List the objects directly under *prefix*."""
        folder = clean_prefix(prefix)
        body = {
            "prefix": folder,
            "limit": STORAGE_LIST_LIMIT,
            "offset": 0,
            "sortBy": {"column": "name", "order": "asc"},
        }
        url = f"{self._config.storage_url}/object/list/{self._bucket}"
        try:
            rows = await self._transport.request("POST", url, json_body=body)
        except FleetDeskError as exc:
            raise UploadError(
                f"Listing {folder!r} in {self._bucket} failed: {exc}",
                path=folder,
                user_message="Could not read stored images.",
            ) from exc
        if not isinstance(rows, list):
            return []
        return [FileEntry.model_validate(row) for row in rows if isinstance(row, dict) and row.get("name")]

    async def remove(self, paths: Iterable[str]) -> list[str]:
        """Remove *paths*.  Unknown paths are not an error.  Returns the requested paths."""
        unique = list(dict.fromkeys(path for path in paths if path))
        if not unique:
            return []
        url = f"{self._config.storage_url}/object/{self._bucket}"
        try:
            await self._transport.request("DELETE", url, json_body={"prefixes": unique})
        except FleetDeskError as exc:
            raise UploadError(
                f"Removing {len(unique)} objects from {self._bucket} failed: {exc}",
                path=unique[0],
                user_message="Could not remove the stored images.",
            ) from exc
        _logger.debug("Removed %s from %s", unique, self._bucket)
        return unique

"""Truck deletion with best-effort image cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fleetdesk._constants import IMAGE_SLOTS
from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.exceptions import RemoteWriteError, UploadError
from fleetdesk.models.truck import Truck
from fleetdesk.object_store import ObjectStore, clean_prefix, path_from_public_url
from fleetdesk.state.store import SyncedCollectionStore

_logger = logging.getLogger(__name__)

DELETE_FAILED_MESSAGE = "Could not delete the truck. Please try again."


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of :func:`delete_truck`.

    ``cleanup_error`` is set when some stored images could not be removed;
    the row itself was still deleted.
    """

    truck_id: str
    removed_paths: tuple[str, ...] = field(default_factory=tuple)
    cleanup_error: UploadError | None = None

    @property
    def cleanup_complete(self) -> bool:
        return self.cleanup_error is None


async def collect_truck_image_paths(images: ObjectStore, truck: Truck) -> list[str]:
    """Every stored path that belongs to *truck*.

    Objects listed under the ``tuuid`` prefix come first, then any path
    parsed from the ten slot URLs that the listing did not return.
    """
    paths: list[str] = []
    tuuid = clean_prefix(truck.tuuid)
    if tuuid:
        try:
            entries = await images.list(tuuid)
        except UploadError:
            _logger.warning("Listing images under %s failed; using slot URLs only", tuuid, exc_info=True)
        else:
            paths.extend(f"{tuuid}/{entry.name}" for entry in entries)

    for slot in IMAGE_SLOTS:
        path = path_from_public_url(getattr(truck, slot), images.bucket)
        if path and path not in paths:
            paths.append(path)
    return paths


async def delete_truck(
    trucks: RemoteCollectionClient[Truck],
    images: ObjectStore,
    truck: Truck,
    *,
    store: SyncedCollectionStore[Truck] | None = None,
) -> DeleteOutcome:
    """Delete *truck* and reclaim its stored images.

    Image removal is best effort: a failure is logged and reported on the
    outcome but does not stop the row delete.  After the row is deleted
    the id is spliced out of *store* immediately.

    Raises
    ------
    RemoteWriteError
        The row delete was rejected; the local list is left unchanged.
    """
    removed: list[str] = []
    cleanup_error: UploadError | None = None
    try:
        paths = await collect_truck_image_paths(images, truck)
        if paths:
            removed = await images.remove(paths)
    except UploadError as exc:
        cleanup_error = exc
        _logger.warning("Image cleanup for truck id=%s tuuid=%s failed", truck.id, truck.tuuid, exc_info=True)

    try:
        await trucks.delete_by_id(truck.id)
    except RemoteWriteError as exc:
        raise RemoteWriteError(
            str(exc),
            collection=exc.collection,
            operation="delete",
            user_message=DELETE_FAILED_MESSAGE,
        ) from exc

    if store is not None:
        store.remove_local(truck.id)
    _logger.debug("Deleted truck id=%s removed=%s", truck.id, removed)
    return DeleteOutcome(truck_id=truck.id, removed_paths=tuple(removed), cleanup_error=cleanup_error)

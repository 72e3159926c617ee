"""Create-or-edit session for one truck.

A session owns one draft and the ten image slots of that draft.  Image
uploads run independently per slot; ``save`` writes the complete field
set in a single insert or update.

State machine::

    IDLE -> EDITING -> SAVING -> SAVED | FAILED

Every async result is checked against the session's current target
before it is applied.  A result that resolves after the session has been
re-targeted (``begin_new``/``begin_edit``/``close``), or after a newer
upload for the same slot started, is dropped.
"""

from __future__ import annotations

import base64
import dataclasses
import logging
import mimetypes
import re
import uuid
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from fleetdesk._constants import (
    CUSTOM_BRAND,
    DEFAULT_FUEL_TYPE,
    DEFAULT_TRANSMISSION,
    IMAGE_SLOTS,
    MAX_FEATURES,
    TRUCK_BRANDS,
)
from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.exceptions import FleetDeskError, FleetValidationError, RemoteWriteError, UploadError
from fleetdesk.models._base import isoformat, utcnow
from fleetdesk.models.requests import TruckWrite, validated
from fleetdesk.models.truck import Truck, TruckStatus
from fleetdesk.object_store import ObjectStore, path_from_public_url
from fleetdesk.state.store import SyncedCollectionStore

_logger = logging.getLogger(__name__)

_FEATURE_SPLIT = re.compile(r"[,\n]")

SAVE_FAILED_MESSAGE = "Could not save the truck details. Please try again."
UPLOAD_FAILED_MESSAGE = "Could not upload the image. Please try another one."
UPLOAD_IN_PROGRESS_MESSAGE = "Please wait for the image uploads to finish."


class EditState(StrEnum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


class SlotStatus(StrEnum):
    EMPTY = "empty"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"


def normalize_features(text: str | list[str] | None) -> list[str]:
    """Split feature input on commas and newlines.

    Entries are trimmed, empties dropped, order kept and the result is
    truncated to the first 20.
    """
    if text is None:
        return []
    parts = _FEATURE_SPLIT.split(text) if isinstance(text, str) else [str(item) for item in text]
    return [part.strip() for part in parts if part.strip()][:MAX_FEATURES]


@dataclasses.dataclass(frozen=True)
class ImageFile:
    """A file chosen for upload."""

    filename: str
    content: bytes
    content_type: str = ""

    @property
    def mime_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or "application/octet-stream"

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        if dot and ext and "/" not in ext:
            return ext.lower()
        guessed = mimetypes.guess_extension(self.mime_type) if self.content_type else None
        return guessed.lstrip(".") if guessed else "bin"

    def preview_url(self) -> str:
        """Inline data URL usable as a local preview before the upload finishes."""
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclasses.dataclass(frozen=True)
class ImageSlot:
    name: str
    url: str = ""
    status: SlotStatus = SlotStatus.EMPTY
    preview: str = ""
    error: str | None = None

    @property
    def display_url(self) -> str:
        return self.preview or self.url


@dataclasses.dataclass
class TruckDraft:
    """Editable form state.  ``brand`` is the selected list entry; ``custom_brand`` applies when it is "Custom"."""

    brand: str = ""
    custom_brand: str = ""
    model: str = ""
    year: Any = dataclasses.field(default_factory=lambda: utcnow().year)
    price: Any = 0
    mileage: Any = 0
    fuel_type: str = DEFAULT_FUEL_TYPE
    transmission: str = DEFAULT_TRANSMISSION
    engine_capacity: str = ""
    horsepower: Any = 0
    color: str = ""
    vin: str = ""
    description: str = ""
    status: str = TruckStatus.AVAILABLE.value
    features_text: str = ""

    @classmethod
    def from_truck(cls, truck: Truck) -> TruckDraft:
        known = truck.brand in TRUCK_BRANDS
        return cls(
            brand=truck.brand if known else CUSTOM_BRAND,
            custom_brand="" if known else truck.brand,
            model=truck.model,
            year=truck.year,
            price=truck.price,
            mileage=truck.mileage,
            fuel_type=truck.fuel_type,
            transmission=truck.transmission,
            engine_capacity=truck.engine_capacity,
            horsepower=truck.horsepower,
            color=truck.color,
            vin=truck.vin,
            description=truck.description,
            status=truck.status.value,
            features_text="\n".join(truck.features),
        )

    @property
    def resolved_brand(self) -> str:
        if self.brand == CUSTOM_BRAND:
            return self.custom_brand.strip()
        return self.brand.strip()


_DRAFT_FIELDS = frozenset(field.name for field in dataclasses.fields(TruckDraft))


class RecordEditSession:
    """One create-or-edit interaction for a truck.

    Parameters
    ----------
    trucks : RemoteCollectionClient[Truck]
        Table the draft is written to.
    images : ObjectStore
        Bucket holding the truck images.
    store : SyncedCollectionStore[Truck] | None
        When given, a successful save is echoed into the local list.
    on_saved : Callable[[Truck], None] | None
        Called after every successful save.
    """

    def __init__(
        self,
        trucks: RemoteCollectionClient[Truck],
        images: ObjectStore,
        *,
        store: SyncedCollectionStore[Truck] | None = None,
        on_saved: Callable[[Truck], None] | None = None,
    ) -> None:
        self._trucks = trucks
        self._images = images
        self._store = store
        self._on_saved = on_saved
        self._state = EditState.IDLE
        self._target: Truck | None = None
        self._tuuid = ""
        self._draft = TruckDraft()
        self._slots: dict[str, ImageSlot] = {slot: ImageSlot(slot) for slot in IMAGE_SLOTS}
        self._slot_tokens: dict[str, int] = dict.fromkeys(IMAGE_SLOTS, 0)
        self._epoch = 0
        self._error: str | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EditState:
        return self._state

    @property
    def target(self) -> Truck | None:
        """The record being edited; ``None`` while creating."""
        return self._target

    @property
    def is_new(self) -> bool:
        return self._target is None

    @property
    def tuuid(self) -> str:
        return self._tuuid

    @property
    def draft(self) -> TruckDraft:
        return self._draft

    @property
    def slots(self) -> dict[str, ImageSlot]:
        return dict(self._slots)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def uploads_in_flight(self) -> list[str]:
        return [name for name, slot in self._slots.items() if slot.status is SlotStatus.UPLOADING]

    def slot(self, name: str) -> ImageSlot:
        self._require_slot(name)
        return self._slots[name]

    # ------------------------------------------------------------------
    # Targeting
    # ------------------------------------------------------------------

    def begin_new(self) -> None:
        """Start a blank draft with a fresh ``tuuid``."""
        self._retarget(None, str(uuid.uuid4()), TruckDraft(), {})

    def begin_edit(self, truck: Truck) -> None:
        """Start a draft seeded from *truck*, keeping its ``tuuid``.

        Records created before ``tuuid`` existed get a fresh one; it is
        persisted on the next save.
        """
        tuuid = truck.tuuid or str(uuid.uuid4())
        self._retarget(truck, tuuid, TruckDraft.from_truck(truck), truck.image_urls())

    def close(self) -> None:
        """Discard the draft.  Pending async results are ignored."""
        self._retarget(None, "", TruckDraft(), {})
        self._state = EditState.IDLE

    def _retarget(self, target: Truck | None, tuuid: str, draft: TruckDraft, urls: dict[str, str]) -> None:
        self._epoch += 1
        self._target = target
        self._tuuid = tuuid
        self._draft = draft
        self._error = None
        self._slots = {}
        for slot in IMAGE_SLOTS:
            url = urls.get(slot, "")
            self._slots[slot] = ImageSlot(slot, url=url, status=SlotStatus.UPLOADED if url else SlotStatus.EMPTY)
        self._slot_tokens = {slot: token + 1 for slot, token in self._slot_tokens.items()}
        self._state = EditState.EDITING
        _logger.debug("Edit session targets id=%s tuuid=%s", target.id if target else None, tuuid)

    def _require_open(self) -> None:
        if self._state is EditState.IDLE:
            raise FleetDeskError("No draft is open; call begin_new() or begin_edit() first")

    @staticmethod
    def _require_slot(name: str) -> None:
        if name not in IMAGE_SLOTS:
            raise FleetValidationError(f"Unknown image slot {name!r}", field=name)

    def _is_current(self, epoch: int, slot: str | None = None, token: int | None = None) -> bool:
        if epoch != self._epoch:
            return False
        return slot is None or self._slot_tokens.get(slot) == token

    # ------------------------------------------------------------------
    # Field edits
    # ------------------------------------------------------------------

    def set_field(self, name: str, value: Any) -> None:
        self._require_open()
        if name not in _DRAFT_FIELDS:
            raise FleetValidationError(f"Unknown truck field {name!r}", field=name)
        setattr(self._draft, name, value)
        self._mark_edited()

    def update(self, **fields: Any) -> None:
        for name, value in fields.items():
            self.set_field(name, value)

    def _mark_edited(self) -> None:
        if self._state in (EditState.SAVED, EditState.FAILED):
            self._state = EditState.EDITING

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def object_path(self, slot: str, file: ImageFile) -> str:
        return f"{self._tuuid}/{slot}.{file.extension}"

    async def _remove_slot_objects(self, tuuid: str, slot: str, current_url: str) -> list[str]:
        """Delete every stored object that belongs to *slot*.

        Objects are found by listing ``tuuid/`` for names starting with
        ``"{slot}."``; the path parsed from the slot's current URL is added
        in case the listing failed or missed it.
        """
        paths: list[str] = []
        try:
            entries = await self._images.list(tuuid)
        except UploadError:
            _logger.debug("Listing %s failed; falling back to the slot URL", tuuid, exc_info=True)
        else:
            prefix = f"{slot}."
            paths.extend(f"{tuuid}/{entry.name}" for entry in entries if entry.name.startswith(prefix))

        parsed = path_from_public_url(current_url, self._images.bucket) if current_url else None
        if parsed and parsed not in paths:
            paths.append(parsed)

        if paths:
            await self._images.remove(paths)
        return paths

    async def upload_image(self, slot: str, file: ImageFile) -> ImageSlot:
        """Replace the image in *slot* with *file*.

        Returns the slot's state after the upload.  Failures leave the slot
        empty with a slot-scoped error and raise :class:`UploadError`.
        """
        self._require_open()
        self._require_slot(slot)
        if not self._tuuid:
            raise UploadError(
                "Draft has no tuuid",
                path=slot,
                user_message="Please close and reopen the form to try again.",
            )

        epoch = self._epoch
        token = self._slot_tokens[slot] + 1
        self._slot_tokens[slot] = token
        tuuid = self._tuuid
        previous = self._slots[slot]
        self._slots[slot] = ImageSlot(slot, url=previous.url, status=SlotStatus.UPLOADING, preview=file.preview_url())

        path = f"{tuuid}/{slot}.{file.extension}"
        try:
            try:
                await self._remove_slot_objects(tuuid, slot, previous.url)
            except UploadError:
                # Overwrite still replaces same-extension objects.
                _logger.warning("Could not clear old objects for %s/%s", tuuid, slot, exc_info=True)
            await self._images.put(path, file.content, file.mime_type, upsert=True)
            url = self._images.public_url(path)
        except UploadError as exc:
            if not self._is_current(epoch, slot, token):
                _logger.debug("Ignoring failed upload for stale slot %s", slot)
                return self._slots[slot]
            _logger.warning("Upload of %s failed", path, exc_info=True)
            self._slots[slot] = ImageSlot(slot, status=SlotStatus.UPLOAD_FAILED, error=UPLOAD_FAILED_MESSAGE)
            raise UploadError(str(exc), path=path, user_message=UPLOAD_FAILED_MESSAGE) from exc

        if not self._is_current(epoch, slot, token):
            _logger.debug("Ignoring upload result for stale slot %s path=%s", slot, path)
            return self._slots[slot]
        self._slots[slot] = ImageSlot(slot, url=url, status=SlotStatus.UPLOADED)
        self._mark_edited()
        return self._slots[slot]

    async def remove_image(self, slot: str) -> ImageSlot:
        """Delete the stored object(s) for *slot* and clear it.

        When the delete fails the slot keeps its URL and records the error.
        """
        self._require_open()
        self._require_slot(slot)
        epoch = self._epoch
        token = self._slot_tokens[slot] + 1
        self._slot_tokens[slot] = token
        current = self._slots[slot]
        try:
            await self._remove_slot_objects(self._tuuid, slot, current.url)
        except UploadError as exc:
            if self._is_current(epoch, slot, token):
                self._slots[slot] = dataclasses.replace(current, error=exc.user_message)
            raise

        if self._is_current(epoch, slot, token):
            self._slots[slot] = ImageSlot(slot)
            self._mark_edited()
        return self._slots[slot]

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def build_write(self, *, now: datetime | None = None) -> TruckWrite:
        """Validate the draft and build the full write payload."""
        draft = self._draft
        return validated(
            TruckWrite,
            tuuid=self._tuuid,
            brand=draft.resolved_brand,
            model=draft.model,
            year=draft.year,
            price=draft.price,
            mileage=draft.mileage or 0,
            fuel_type=draft.fuel_type,
            transmission=draft.transmission,
            engine_capacity=draft.engine_capacity,
            horsepower=draft.horsepower or 0,
            color=draft.color,
            vin=draft.vin,
            description=draft.description,
            status=draft.status,
            features=normalize_features(draft.features_text),
            updated_at=isoformat(now or utcnow()),
            **{slot: self._slots[slot].url for slot in IMAGE_SLOTS},
        )

    async def save(self) -> Truck:
        """Write the draft with one insert (new) or one update (existing).

        Raises
        ------
        FleetValidationError
            A required field is missing or an upload is still running.  No
            remote call is made and the state is unchanged.
        RemoteWriteError
            The write was rejected.  The session moves to ``FAILED`` and
            the draft stays editable.
        """
        self._require_open()
        if self._state is EditState.SAVING:
            raise FleetValidationError("A save is already in progress", user_message="The truck is already being saved.")
        uploading = self.uploads_in_flight
        if uploading:
            raise FleetValidationError(
                f"Uploads still running for {', '.join(uploading)}",
                field=uploading[0],
                user_message=UPLOAD_IN_PROGRESS_MESSAGE,
            )

        try:
            payload = self.build_write().to_payload()
        except FleetValidationError as exc:
            self._error = exc.user_message
            raise

        epoch = self._epoch
        target = self._target
        self._state = EditState.SAVING
        self._error = None
        try:
            if target is None:
                saved = await self._trucks.insert(payload)
            else:
                saved = await self._trucks.update_by_id(target.id, payload)
                if saved is None:
                    raise RemoteWriteError(
                        f"Update of truck id={target.id} matched no row",
                        collection=self._trucks.collection,
                        operation="update",
                    )
        except RemoteWriteError as exc:
            if self._is_current(epoch):
                self._state = EditState.FAILED
                self._error = SAVE_FAILED_MESSAGE
            _logger.warning("Saving truck tuuid=%s failed", payload["tuuid"], exc_info=True)
            raise RemoteWriteError(
                str(exc),
                collection=exc.collection,
                operation=exc.operation,
                user_message=SAVE_FAILED_MESSAGE,
            ) from exc

        if self._store is not None:
            self._store.upsert_local(saved)
        if not self._is_current(epoch):
            _logger.debug("Save of id=%s finished after the session moved on", saved.id)
            return saved

        self._target = saved
        self._state = EditState.SAVED
        _logger.debug("Saved truck id=%s tuuid=%s", saved.id, saved.tuuid)
        if self._on_saved is not None:
            self._on_saved(saved)
        return saved

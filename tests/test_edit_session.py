from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fleetdesk._constants import IMAGE_SLOTS
from fleetdesk.exceptions import FleetDeskError, FleetValidationError, RemoteWriteError, UploadError
from fleetdesk.models.truck import Truck
from fleetdesk.object_store import ObjectStore
from fleetdesk.state.store import SyncedCollectionStore
from fleetdesk.workflows.edit_session import (
    SAVE_FAILED_MESSAGE,
    UPLOAD_FAILED_MESSAGE,
    EditState,
    ImageFile,
    RecordEditSession,
    SlotStatus,
    TruckDraft,
    normalize_features,
)

JPEG = ImageFile("front.jpg", b"\xff\xd8jpeg-bytes", "image/jpeg")


class GatedBackend:
    """Wraps the fake backend and holds object uploads until ``release`` is set."""

    def __init__(self, backend) -> None:
        self.backend = backend
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        if method == "POST" and "/storage/v1/object/truckimages/" in url:
            self.started.set()
            await self.release.wait()
        return await self.backend.request(method, url, **kwargs)


def _existing_truck(backend, **fields: Any) -> Truck:
    row = {
        "tuuid": "abc",
        "brand": "Volvo",
        "model": "FH16",
        "year": 2020,
        "price": 80000,
        "features": ["ABS"],
    }
    row.update(fields)
    return Truck.model_validate(backend.seed("trucks", **row))


@pytest.fixture
def session(trucks_client, images) -> RecordEditSession:
    return RecordEditSession(trucks_client, images)


def test_normalize_features_trims_and_drops_empties() -> None:
    assert normalize_features("ABS, Radio\nClimate Control,,  ") == ["ABS", "Radio", "Climate Control"]


def test_normalize_features_keeps_first_twenty() -> None:
    text = ",".join(f"F{i}" for i in range(25))

    features = normalize_features(text)

    assert len(features) == 20
    assert features[0] == "F0"
    assert features[-1] == "F19"


def test_image_file_extension_and_preview() -> None:
    assert ImageFile("Front.JPG", b"x").extension == "jpg"
    assert ImageFile("blob", b"x", "image/png").extension == "png"
    assert ImageFile("blob", b"x").extension == "bin"
    assert JPEG.preview_url().startswith("data:image/jpeg;base64,")


def test_draft_from_truck_maps_unknown_brand_to_custom() -> None:
    draft = TruckDraft.from_truck(Truck(brand="Tatra", model="Phoenix", features=["ABS", "Radio"]))

    assert draft.brand == "Custom"
    assert draft.custom_brand == "Tatra"
    assert draft.resolved_brand == "Tatra"
    assert draft.features_text == "ABS\nRadio"


def test_begin_new_generates_fresh_tuuid(session) -> None:
    session.begin_new()
    first = session.tuuid
    session.begin_new()

    assert first and session.tuuid and first != session.tuuid
    assert session.is_new
    assert session.state is EditState.EDITING
    assert all(slot.status is SlotStatus.EMPTY for slot in session.slots.values())


def test_set_field_rejects_unknown_names(session) -> None:
    session.begin_new()

    with pytest.raises(FleetValidationError):
        session.set_field("wheels", 6)


@pytest.mark.asyncio
async def test_create_with_main_image_issues_one_insert(backend, trucks_client, images) -> None:
    store = SyncedCollectionStore(trucks_client)
    saved_events: list[Truck] = []
    session = RecordEditSession(trucks_client, images, store=store, on_saved=saved_events.append)
    session.begin_new()
    session.update(brand="Volvo", model="FH16", year=2024, price=120000, features_text="ABS, Radio")

    slot = await session.upload_image("main_image", JPEG)
    truck = await session.save()

    expected_url = backend.public_url(f"{session.tuuid}/main_image.jpg")
    assert slot.status is SlotStatus.UPLOADED
    assert slot.url == expected_url
    inserts = backend.calls_to("POST", "/rest/v1/trucks")
    assert len(inserts) == 1
    body = inserts[0].json_body
    assert body["main_image"] == expected_url
    assert body["tuuid"] == session.tuuid
    assert body["features"] == ["ABS", "Radio"]
    assert all(body[name] == "" for name in IMAGE_SLOTS[1:])
    assert backend.objects[f"{session.tuuid}/main_image.jpg"] == JPEG.content
    assert truck.main_image == expected_url
    assert store.records == (truck,)
    assert saved_events == [truck]
    assert session.state is EditState.SAVED
    assert session.target == truck


@pytest.mark.asyncio
async def test_edit_without_image_changes_keeps_tuuid_and_urls(backend, session) -> None:
    url = backend.public_url("abc/main_image.jpg")
    truck = _existing_truck(backend, main_image=url)
    session.begin_edit(truck)
    session.set_field("price", 75000)

    saved = await session.save()

    patch = backend.calls_to("PATCH", "/rest/v1/trucks")
    assert len(patch) == 1
    assert patch[0].params == {"id": f"eq.{truck.id}"}
    assert patch[0].json_body["tuuid"] == "abc"
    assert patch[0].json_body["main_image"] == url
    assert saved.tuuid == "abc"
    assert saved.price == 75000
    assert not backend.calls_to("POST", "/storage/v1/object/")


@pytest.mark.asyncio
async def test_legacy_record_without_tuuid_gets_one_on_save(backend, session) -> None:
    truck = _existing_truck(backend, tuuid="")
    session.begin_edit(truck)

    saved = await session.save()

    assert session.tuuid
    assert saved.tuuid == session.tuuid


@pytest.mark.asyncio
async def test_custom_brand_is_written_as_brand(backend, session) -> None:
    session.begin_new()
    session.update(brand="Custom", custom_brand="  Tatra ", model="Phoenix", year=2022, price=90000)

    await session.save()

    assert backend.calls_to("POST", "/rest/v1/trucks")[0].json_body["brand"] == "Tatra"


@pytest.mark.asyncio
async def test_validation_errors_make_no_remote_call(backend, session) -> None:
    session.begin_new()
    session.update(brand="Custom", custom_brand="", model="FH16", year=2024, price=1000)

    with pytest.raises(FleetValidationError) as excinfo:
        await session.save()

    assert excinfo.value.field == "brand"
    assert session.error == excinfo.value.user_message
    assert session.state is EditState.EDITING
    assert backend.calls == []


@pytest.mark.asyncio
async def test_negative_price_is_rejected(backend, session) -> None:
    session.begin_new()
    session.update(brand="Volvo", model="FH16", year=2024, price=-5)

    with pytest.raises(FleetValidationError) as excinfo:
        await session.save()

    assert excinfo.value.field == "price"
    assert backend.calls == []


@pytest.mark.asyncio
async def test_failed_save_keeps_draft_editable(backend, session) -> None:
    truck = _existing_truck(backend)
    session.begin_edit(truck)
    session.set_field("model", "FH16 Aero")
    backend.fail_on("PATCH", "/rest/v1/trucks")

    with pytest.raises(RemoteWriteError) as excinfo:
        await session.save()

    assert excinfo.value.user_message == SAVE_FAILED_MESSAGE
    assert session.state is EditState.FAILED
    assert session.draft.model == "FH16 Aero"

    backend.clear_failures()
    saved = await session.save()
    assert saved.model == "FH16 Aero"
    assert session.state is EditState.SAVED


@pytest.mark.asyncio
async def test_update_matching_no_row_is_write_error(backend, session) -> None:
    truck = _existing_truck(backend)
    backend.tables["trucks"].clear()
    session.begin_edit(truck)

    with pytest.raises(RemoteWriteError):
        await session.save()

    assert session.state is EditState.FAILED


@pytest.mark.asyncio
async def test_upload_replaces_objects_of_that_slot_only(backend, session) -> None:
    backend.objects.update({"abc/main_image.png": b"old", "abc/image1.jpg": b"keep"})
    truck = _existing_truck(backend, main_image=backend.public_url("abc/main_image.png"))
    session.begin_edit(truck)

    await session.upload_image("main_image", JPEG)

    removes = backend.calls_to("DELETE", "/storage/v1/object/truckimages")
    assert len(removes) == 1
    assert removes[0].json_body == {"prefixes": ["abc/main_image.png"]}
    assert set(backend.objects) == {"abc/image1.jpg", "abc/main_image.jpg"}
    assert session.slot("main_image").url == backend.public_url("abc/main_image.jpg")


@pytest.mark.asyncio
async def test_upload_failure_clears_slot_with_error(backend, session) -> None:
    truck = _existing_truck(backend, image2=backend.public_url("abc/image2.jpg"))
    session.begin_edit(truck)
    backend.fail_on("POST", "/storage/v1/object/truckimages/")

    with pytest.raises(UploadError) as excinfo:
        await session.upload_image("image2", JPEG)

    slot = session.slot("image2")
    assert excinfo.value.user_message == UPLOAD_FAILED_MESSAGE
    assert slot.status is SlotStatus.UPLOAD_FAILED
    assert slot.url == ""
    assert slot.error == UPLOAD_FAILED_MESSAGE


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_block_upload(backend, session) -> None:
    session.begin_new()
    backend.fail_on("POST", "/storage/v1/object/list/")

    slot = await session.upload_image("image3", JPEG)

    assert slot.status is SlotStatus.UPLOADED


@pytest.mark.asyncio
async def test_remove_image_failure_keeps_url(backend, session) -> None:
    url = backend.public_url("abc/image1.jpg")
    backend.objects["abc/image1.jpg"] = b"x"
    session.begin_edit(_existing_truck(backend, image1=url))
    backend.fail_on("DELETE", "/storage/v1/object/truckimages")

    with pytest.raises(UploadError):
        await session.remove_image("image1")

    slot = session.slot("image1")
    assert slot.url == url
    assert slot.status is SlotStatus.UPLOADED
    assert slot.error


@pytest.mark.asyncio
async def test_remove_image_clears_slot(backend, session) -> None:
    url = backend.public_url("abc/image1.jpg")
    backend.objects["abc/image1.jpg"] = b"x"
    session.begin_edit(_existing_truck(backend, image1=url))

    slot = await session.remove_image("image1")

    assert slot.url == ""
    assert slot.status is SlotStatus.EMPTY
    assert "abc/image1.jpg" not in backend.objects


@pytest.mark.asyncio
async def test_image_changes_after_save_return_to_editing(backend, session) -> None:
    session.begin_edit(_existing_truck(backend))
    await session.save()
    assert session.state is EditState.SAVED

    await session.upload_image("image1", JPEG)
    assert session.state is EditState.EDITING

    await session.save()
    await session.remove_image("image1")
    assert session.state is EditState.EDITING


@pytest.mark.asyncio
async def test_save_is_refused_while_upload_in_flight(backend, trucks_client, config) -> None:
    gated = GatedBackend(backend)
    session = RecordEditSession(trucks_client, ObjectStore(gated, config))
    session.begin_new()
    session.update(brand="Volvo", model="FH16", year=2024, price=1)

    upload = asyncio.create_task(session.upload_image("main_image", JPEG))
    await gated.started.wait()

    assert session.uploads_in_flight == ["main_image"]
    with pytest.raises(FleetValidationError):
        await session.save()
    assert not backend.calls_to("POST", "/rest/v1/trucks")

    gated.release.set()
    await upload
    await session.save()
    assert len(backend.calls_to("POST", "/rest/v1/trucks")) == 1


@pytest.mark.asyncio
async def test_upload_finishing_after_retarget_is_ignored(backend, trucks_client, config) -> None:
    gated = GatedBackend(backend)
    session = RecordEditSession(trucks_client, ObjectStore(gated, config))
    session.begin_new()

    upload = asyncio.create_task(session.upload_image("main_image", JPEG))
    await gated.started.wait()
    session.begin_new()
    gated.release.set()
    await upload

    slot = session.slot("main_image")
    assert slot.status is SlotStatus.EMPTY
    assert slot.url == ""


def test_operations_require_open_draft(session) -> None:
    with pytest.raises(FleetDeskError, match="No draft is open"):
        session.set_field("model", "FH")

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetTransportError
from fleetdesk.mail import MailClient
from fleetdesk.models.inquiry import Inquiry
from fleetdesk.models.truck import Truck
from fleetdesk.object_store import ObjectStore
from fleetdesk.state.events import ChangeEvent

BASE_URL = "https://fleet.test"
MAIL_URL = "https://api.emailjs.com/api/v1.0/email/send"
_EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


@dataclass
class Call:
    method: str
    path: str
    params: dict[str, str]
    json_body: Any
    data: bytes | None
    headers: dict[str, str]


@dataclass
class FakeSupabase:
    """In-memory PostgREST, storage, auth and mail backend behind the Transport protocol."""

    bucket: str = "truckimages"
    tables: dict[str, list[dict[str, Any]]] = field(default_factory=lambda: {"trucks": [], "inquiries": []})
    objects: dict[str, bytes] = field(default_factory=dict)
    users: dict[str, str] = field(default_factory=lambda: {"admin@example.com": "secret"})
    calls: list[Call] = field(default_factory=list)
    mail_sent: list[dict[str, Any]] = field(default_factory=list)
    failures: dict[tuple[str, str], FleetTransportError] = field(default_factory=dict)
    token_counter: int = 0
    token_ttl: int = 3600
    _next_id: int = 1

    # -- test helpers -------------------------------------------------

    def fail_on(self, method: str, path_prefix: str, *, status: int = 500, message: str = "boom") -> None:
        self.failures[(method, path_prefix)] = FleetTransportError(
            f"HTTP {status} from {path_prefix}: {message}",
            status_code=status,
            endpoint=path_prefix,
            detail=message,
        )

    def clear_failures(self) -> None:
        self.failures.clear()

    def seed(self, table: str, **row: Any) -> dict[str, Any]:
        stored = self._stamp(dict(row))
        self.tables[table].append(stored)
        return dict(stored)

    def calls_to(self, method: str, path_prefix: str) -> list[Call]:
        return [call for call in self.calls if call.method == method and call.path.startswith(path_prefix)]

    def public_url(self, path: str) -> str:
        return f"{BASE_URL}/storage/v1/object/public/{self.bucket}/{path}"

    def _stamp(self, row: dict[str, Any]) -> dict[str, Any]:
        if "id" not in row:
            row["id"] = self._next_id
            self._next_id += 1
        row.setdefault("created_at", (_EPOCH + timedelta(seconds=int(row["id"]))).isoformat())
        return row

    # -- transport ----------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Any = None,
        json_body: Any = None,
        data: bytes | None = None,
        headers: Any = None,
        supabase_auth: bool = True,
    ) -> Any:
        path = url[len(BASE_URL) :] if url.startswith(BASE_URL) else url
        self.calls.append(Call(method, path, dict(params or {}), json_body, data, dict(headers or {})))
        for (fail_method, prefix), error in self.failures.items():
            if fail_method == method and path.startswith(prefix):
                raise error

        if url == MAIL_URL:
            self.mail_sent.append(json_body)
            return "OK"
        if path.startswith("/rest/v1/"):
            return self._rest(method, path[len("/rest/v1/") :], dict(params or {}), json_body)
        if path.startswith("/storage/v1/object/"):
            return self._storage(method, path[len("/storage/v1/object/") :], json_body, data)
        if path.startswith("/auth/v1/"):
            return self._auth(method, path[len("/auth/v1/") :], dict(params or {}), json_body)
        raise AssertionError(f"unexpected request {method} {url}")

    def _matches(self, row: dict[str, Any], params: dict[str, str]) -> bool:
        for column, value in params.items():
            if column in ("select", "order", "limit"):
                continue
            if str(row.get(column)) != value.removeprefix("eq."):
                return False
        return True

    def _rest(self, method: str, table: str, params: dict[str, str], body: Any) -> Any:
        rows = self.tables.setdefault(table, [])
        if method == "GET":
            selected = [dict(row) for row in rows if self._matches(row, params)]
            order = params.get("order")
            if order:
                column, _, direction = order.partition(".")
                selected.sort(key=lambda row: str(row.get(column) or ""), reverse=direction == "desc")
            if "limit" in params:
                selected = selected[: int(params["limit"])]
            return selected
        if method == "POST":
            inserted = [self._stamp(dict(item)) for item in (body if isinstance(body, list) else [body])]
            rows.extend(inserted)
            return [dict(row) for row in inserted]
        if method == "PATCH":
            updated = []
            for row in rows:
                if self._matches(row, params):
                    row.update(body)
                    updated.append(dict(row))
            return updated
        if method == "DELETE":
            self.tables[table] = [row for row in rows if not self._matches(row, params)]
            return None
        raise AssertionError(f"unexpected {method} on {table}")

    def _storage(self, method: str, path: str, body: Any, data: bytes | None) -> Any:
        if method == "POST" and path == f"list/{self.bucket}":
            prefix = body["prefix"].strip("/")
            names = sorted(
                key[len(prefix) + 1 :]
                for key in self.objects
                if key.startswith(f"{prefix}/") and "/" not in key[len(prefix) + 1 :]
            )
            return [{"name": name, "id": f"obj-{name}", "metadata": {}} for name in names]
        if method == "POST" and path.startswith(f"{self.bucket}/"):
            self.objects[path[len(self.bucket) + 1 :]] = data or b""
            return {"Key": path}
        if method == "DELETE" and path == self.bucket:
            for key in body["prefixes"]:
                self.objects.pop(key, None)
            return [{"name": key} for key in body["prefixes"]]
        raise AssertionError(f"unexpected storage {method} {path}")

    def _tokens(self, email: str) -> dict[str, Any]:
        self.token_counter += 1
        return {
            "access_token": f"access-{self.token_counter}",
            "refresh_token": f"refresh-{self.token_counter}",
            "token_type": "bearer",
            "expires_in": self.token_ttl,
            "user": {"id": "user-1", "email": email, "user_metadata": {"full_name": "Dana Admin"}},
        }

    def _auth(self, method: str, path: str, params: dict[str, str], body: Any) -> Any:
        if path == "token" and params.get("grant_type") == "password":
            if self.users.get(body.get("email")) != body.get("password"):
                raise FleetTransportError(
                    "HTTP 400 from /auth/v1/token: Invalid login credentials",
                    status_code=400,
                    endpoint="/auth/v1/token",
                    code="invalid_credentials",
                    detail="Invalid login credentials",
                )
            return self._tokens(body["email"])
        if path == "token" and params.get("grant_type") == "refresh_token":
            if not str(body.get("refresh_token", "")).startswith("refresh-"):
                raise FleetTransportError("HTTP 400: Invalid Refresh Token", status_code=400, detail="Invalid Refresh Token")
            return self._tokens("admin@example.com")
        if path == "logout":
            return None
        if path == "user":
            return {"id": "user-1", "email": "admin@example.com", "user_metadata": {}}
        raise AssertionError(f"unexpected auth {method} {path}")


@dataclass(eq=False)
class FakeHandle:
    collection: str
    handler: Callable[[ChangeEvent], None]
    active: bool = True


@dataclass
class FakeChangeFeed:
    """ChangeFeed double: records subscriptions and lets tests push events."""

    handles: list[FakeHandle] = field(default_factory=list)
    subscribe_calls: int = 0
    unsubscribe_calls: int = 0

    async def subscribe(self, collection: str, handler: Callable[[ChangeEvent], None]) -> FakeHandle:
        self.subscribe_calls += 1
        handle = FakeHandle(collection, handler)
        self.handles.append(handle)
        return handle

    async def unsubscribe(self, handle: FakeHandle) -> None:
        self.unsubscribe_calls += 1
        handle.active = False

    def emit(self, event: ChangeEvent) -> None:
        for handle in self.handles:
            if handle.active and handle.collection == event.collection:
                handle.handler(event)


@pytest.fixture
def config() -> FleetDeskConfig:
    return FleetDeskConfig(
        supabase_url=BASE_URL,
        anon_key="anon-key",
        mail_service_id="service_1",
        mail_template_id="template_1",
        mail_public_key="public-key",
        mail_from="info@fleet.test",
    )


@pytest.fixture
def backend() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def trucks_client(backend: FakeSupabase, config: FleetDeskConfig) -> RemoteCollectionClient[Truck]:
    return RemoteCollectionClient(backend, config, "trucks", Truck)


@pytest.fixture
def inquiries_client(backend: FakeSupabase, config: FleetDeskConfig) -> RemoteCollectionClient[Inquiry]:
    return RemoteCollectionClient(backend, config, "inquiries", Inquiry)


@pytest.fixture
def images(backend: FakeSupabase, config: FleetDeskConfig) -> ObjectStore:
    return ObjectStore(backend, config)


@pytest.fixture
def mail(backend: FakeSupabase, config: FleetDeskConfig) -> MailClient:
    return MailClient(backend, config)

"""Typed wrapper over one PostgREST table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from fleetdesk._transport import Transport
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetDeskError, RemoteReadError, RemoteWriteError
from fleetdesk.models._base import FleetBaseModel

_logger = logging.getLogger(__name__)

R = TypeVar("R", bound=FleetBaseModel)

_RETURN_REPRESENTATION = {"prefer": "return=representation"}


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class RemoteCollectionClient(Generic[R]):
    """CRUD on one table, returning parsed records of type ``R``.

    Every read failure surfaces as :class:`RemoteReadError` and every write
    failure as :class:`RemoteWriteError`; the underlying transport error is
    chained as ``__cause__``.
    """

    def __init__(self, transport: Transport, config: FleetDeskConfig, table: str, model: type[R]) -> None:
        self._transport = transport
        self._config = config
        self._table = table
        self._model = model

    @property
    def collection(self) -> str:
        return self._table

    @property
    def model(self) -> type[R]:
        return self._model

    @property
    def url(self) -> str:
        return f"{self._config.rest_url}/{self._table}"

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._config.schema != "public":
            headers["accept-profile"] = self._config.schema
            headers["content-profile"] = self._config.schema
        if extra:
            headers.update(extra)
        return headers

    def _parse_rows(self, body: Any) -> list[R]:
        if body is None:
            return []
        if not isinstance(body, list):
            raise RemoteReadError(
                f"Expected a list of rows from {self._table}, got {type(body).__name__}",
                collection=self._table,
            )
        records: list[R] = []
        for row in body:
            try:
                records.append(self._model.model_validate(row))
            except ValidationError:
                _logger.warning("Skipping unparseable %s row id=%s", self._table, (row or {}).get("id"), exc_info=True)
        return records

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, *, order_by: str = "created_at", descending: bool = True) -> list[R]:
        """Fetch every row ordered by *order_by*."""
        return await self.select(order_by=order_by, descending=descending)

    async def select(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[R]:
        """Fetch rows matching equality *filters*."""
        params: dict[str, str] = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = _eq(value)
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)

        try:
            body = await self._transport.request("GET", self.url, params=params, headers=self._headers())
        except FleetDeskError as exc:
            raise RemoteReadError(f"Listing {self._table} failed: {exc}", collection=self._table) from exc
        return self._parse_rows(body)

    async def get(self, record_id: str) -> R | None:
        rows = await self.select({"id": record_id}, order_by=None, limit=1)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, fields: Mapping[str, Any]) -> R:
        """Insert one row and return it as stored (server-assigned id and timestamps)."""
        try:
            body = await self._transport.request(
                "POST",
                self.url,
                json_body=dict(fields),
                headers=self._headers(_RETURN_REPRESENTATION),
            )
        except FleetDeskError as exc:
            raise RemoteWriteError(
                f"Insert into {self._table} failed: {exc}", collection=self._table, operation="insert"
            ) from exc

        rows = self._written_rows(body, "insert")
        if not rows:
            raise RemoteWriteError(
                f"Insert into {self._table} returned no row", collection=self._table, operation="insert"
            )
        return rows[0]

    async def update_by_id(self, record_id: str, fields: Mapping[str, Any]) -> R | None:
        """Update the row with *record_id*.  Returns ``None`` when no row matched."""
        try:
            body = await self._transport.request(
                "PATCH",
                self.url,
                params={"id": _eq(record_id)},
                json_body=dict(fields),
                headers=self._headers(_RETURN_REPRESENTATION),
            )
        except FleetDeskError as exc:
            raise RemoteWriteError(
                f"Update of {self._table} id={record_id} failed: {exc}", collection=self._table, operation="update"
            ) from exc

        rows = self._written_rows(body, "update")
        return rows[0] if rows else None

    async def delete_by_id(self, record_id: str) -> None:
        try:
            await self._transport.request(
                "DELETE",
                self.url,
                params={"id": _eq(record_id)},
                headers=self._headers(),
            )
        except FleetDeskError as exc:
            raise RemoteWriteError(
                f"Delete from {self._table} id={record_id} failed: {exc}", collection=self._table, operation="delete"
            ) from exc
        _logger.debug("Deleted %s id=%s", self._table, record_id)

    def _written_rows(self, body: Any, operation: str) -> list[R]:
        if body is None:
            return []
        if isinstance(body, dict):
            body = [body]
        if not isinstance(body, list):
            raise RemoteWriteError(
                f"Unexpected {operation} response from {self._table}: {type(body).__name__}",
                collection=self._table,
                operation=operation,
            )
        try:
            return [self._model.model_validate(row) for row in body]
        except ValidationError as exc:
            raise RemoteWriteError(
                f"Unparseable {operation} response from {self._table}: {exc}",
                collection=self._table,
                operation=operation,
            ) from exc

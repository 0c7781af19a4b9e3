"""
Supabase-backed data gateway (PostgREST tables + RPC).

This adapter implements DataGatewayProtocol on top of a supabase-py client.
It is duck-typed like the rest of our adapters: the client is expected to
expose `.table(name)` returning a PostgREST request builder and
`.rpc(name, params)`; every builder ends with `.execute()` returning an object
with `.data` and `.count`.

Security:
- Build one instance per request with the caller's access token so that
  row-level security policies apply (see web/gateway_wiring.py).
- The service-role instance bypasses RLS and must only be used for
  administrative provisioning steps.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import httpx
from postgrest.exceptions import APIError

from .ports import Filter, GatewayError, Order, SelectResult, Window

_log = logging.getLogger("aula.gateway")


class SupabaseDataGateway:
    """DataGatewayProtocol implementation using a supabase client."""

    def __init__(self, client: Any):
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    @staticmethod
    def _apply_filters(builder: Any, filters: Sequence[Filter]) -> Any:
        for f in filters:
            if f.op == "eq":
                builder = builder.eq(f.column, f.value)
            elif f.op == "ilike":
                builder = builder.ilike(f.column, f.value)
        return builder

    @staticmethod
    def _execute(builder: Any, *, action: str, target: str) -> Any:
        try:
            return builder.execute()
        except APIError as exc:
            code = getattr(exc, "code", None) or "gateway_error"
            message = getattr(exc, "message", None) or str(exc)
            _log.debug("%s %s failed: code=%s", action, target, code)
            raise GatewayError(str(message), code=str(code)) from exc
        except httpx.HTTPError as exc:
            _log.warning("%s %s failed: error=%s", action, target, type(exc).__name__)
            raise GatewayError(str(exc) or type(exc).__name__, code="network_error") from exc

    @staticmethod
    def _first_row(data: Any) -> dict:
        if isinstance(data, list):
            return dict(data[0]) if data else {}
        if isinstance(data, dict):
            return dict(data)
        return {}

    # --- Protocol methods --------------------------------------------------------

    def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
        window: Optional[Window] = None,
        columns: str = "*",
        count: bool = False,
    ) -> SelectResult:
        if count:
            builder = self._client.table(table).select(columns, count="exact")
        else:
            builder = self._client.table(table).select(columns)
        builder = self._apply_filters(builder, filters)
        if order is not None:
            builder = builder.order(order.column, desc=order.descending)
        if window is not None:
            builder = builder.range(window.start, window.end)
        res = self._execute(builder, action="select", target=table)
        rows = [dict(r) for r in (getattr(res, "data", None) or [])]
        total = getattr(res, "count", None) if count else None
        return SelectResult(rows=rows, count=total)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        builder = self._client.table(table).insert(dict(row))
        res = self._execute(builder, action="insert", target=table)
        return self._first_row(getattr(res, "data", None))

    def update(self, table: str, patch: Mapping[str, Any], *, filters: Sequence[Filter]) -> None:
        if not filters:
            # PostgREST rejects unfiltered updates; fail before the round trip.
            raise GatewayError("update requires at least one filter", code="missing_filter")
        builder = self._apply_filters(self._client.table(table).update(dict(patch)), filters)
        self._execute(builder, action="update", target=table)

    def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> dict:
        builder = self._client.table(table).upsert(dict(row), on_conflict=on_conflict)
        res = self._execute(builder, action="upsert", target=table)
        return self._first_row(getattr(res, "data", None))

    def delete(self, table: str, *, filters: Sequence[Filter]) -> None:
        if not filters:
            raise GatewayError("delete requires at least one filter", code="missing_filter")
        builder = self._apply_filters(self._client.table(table).delete(), filters)
        self._execute(builder, action="delete", target=table)

    def rpc(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Any:
        builder = self._client.rpc(name, dict(args or {}))
        res = self._execute(builder, action="rpc", target=name)
        return getattr(res, "data", None)


__all__ = ["SupabaseDataGateway"]

"""
Data-access port for the hosted backend (PostgREST tables + RPC).

Why:
    Services depend on this protocol instead of a global client so tests can
    inject an in-memory fake and the web layer can build one gateway per
    request, scoped by the caller's token (row-level security applies).

Contract:
    - Rows cross the boundary as plain dicts, as PostgREST returns them.
    - Every failure raises `GatewayError` with the store's machine code
      (e.g. "23503" for a foreign-key violation) and its human message.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from common.errors import UpstreamError

# Postgres / PostgREST codes the services interpret.
FOREIGN_KEY_VIOLATION = "23503"
NO_ROWS = "PGRST116"

FILTER_OPS = frozenset({"eq", "ilike"})


class GatewayError(UpstreamError):
    """Failure reported by the data store."""

    default_code = "gateway_error"


@dataclass(frozen=True)
class Filter:
    column: str
    value: Any
    op: str = "eq"

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"unsupported filter op: {self.op}")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, value, "eq")


def ilike_contains(column: str, term: str) -> Filter:
    """Case-insensitive substring match (`ilike %term%`)."""
    return Filter(column, f"%{term}%", "ilike")


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class Window:
    """Inclusive row range, as PostgREST's `Range` header uses it."""

    start: int
    end: int

    @classmethod
    def for_page(cls, page: int, page_size: int) -> "Window":
        start = (page - 1) * page_size
        return cls(start=start, end=start + page_size - 1)


@dataclass
class SelectResult:
    rows: List[dict] = field(default_factory=list)
    count: Optional[int] = None


class DataGatewayProtocol(Protocol):
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
        ...

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        ...

    def update(self, table: str, patch: Mapping[str, Any], *, filters: Sequence[Filter]) -> None:
        ...

    def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> dict:
        ...

    def delete(self, table: str, *, filters: Sequence[Filter]) -> None:
        ...

    def rpc(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Any:
        ...


def select_maybe_one(
    gateway: DataGatewayProtocol,
    table: str,
    *,
    filters: Sequence[Filter],
    columns: str = "*",
) -> Optional[dict]:
    """Return the single matching row, None when absent.

    More than one match is a store-level inconsistency and raises.
    """
    result = gateway.select(table, filters=filters, columns=columns)
    if not result.rows:
        return None
    if len(result.rows) > 1:
        raise GatewayError(
            f"expected at most one row in {table}, got {len(result.rows)}",
            code="multiple_rows",
        )
    return result.rows[0]


__all__ = [
    "FOREIGN_KEY_VIOLATION",
    "NO_ROWS",
    "GatewayError",
    "Filter",
    "eq",
    "ilike_contains",
    "Order",
    "Window",
    "SelectResult",
    "DataGatewayProtocol",
    "select_maybe_one",
]

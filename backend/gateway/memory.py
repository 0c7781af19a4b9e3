"""
In-memory data gateway for local development and tests.

Why:
    Mirrors the subset of PostgREST semantics the services rely on (equality
    and ilike filters, ordering, inclusive ranges, exact counts, upsert on a
    conflict key, foreign-key protection on delete) without a running backend.

Notes:
    - Not thread-safe; one instance per test or per dev process.
    - Foreign keys are declared explicitly via `references`; deleting a parent
      row that is still referenced raises GatewayError("23503").
    - RPC handlers are plain callables registered by name.
"""
from __future__ import annotations

import copy
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .ports import (
    FOREIGN_KEY_VIOLATION,
    Filter,
    GatewayError,
    Order,
    SelectResult,
    Window,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ilike_matches(pattern: str, value: Any) -> bool:
    if value is None:
        return False
    parts = [re.escape(p) for p in str(pattern).split("%")]
    regex = ".*".join(parts)
    return re.fullmatch(regex, str(value), flags=re.IGNORECASE | re.DOTALL) is not None


def _matches(row: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for f in filters:
        if f.op == "eq":
            if row.get(f.column) != f.value:
                return False
        elif f.op == "ilike":
            if not _ilike_matches(f.value, row.get(f.column)):
                return False
    return True


class InMemoryDataGateway:
    """Dict-of-lists store implementing DataGatewayProtocol."""

    def __init__(self, *, references: Optional[Dict[str, List[Tuple[str, str]]]] = None) -> None:
        self.tables: Dict[str, List[dict]] = {}
        # parent table -> [(child table, child column)]
        self.references: Dict[str, List[Tuple[str, str]]] = dict(references or {})
        self.rpc_handlers: Dict[str, Callable[[Mapping[str, Any]], Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._seq = 0

    # --- Helpers -----------------------------------------------------------------

    def _rows(self, table: str) -> List[dict]:
        return self.tables.setdefault(table, [])

    def _stamp(self) -> str:
        # Monotonic suffix keeps created_at ordering stable for rows inserted
        # within the same clock tick.
        self._seq += 1
        base = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        return f"{base}.{self._seq:06d}+00:00"

    def seed(self, table: str, *rows: Mapping[str, Any]) -> List[dict]:
        """Insert rows verbatim (ids filled in when missing)."""
        stored = []
        for row in rows:
            record = dict(row)
            record.setdefault("id", str(uuid4()))
            self._rows(table).append(record)
            stored.append(copy.deepcopy(record))
        return stored

    def register_rpc(self, name: str, handler: Callable[[Mapping[str, Any]], Any]) -> None:
        self.rpc_handlers[name] = handler

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
        self.calls.append(("select", table))
        rows = [r for r in self._rows(table) if _matches(r, filters)]
        if order is not None:
            # Postgres default: nulls last ascending, nulls first descending.
            present = [r for r in rows if r.get(order.column) is not None]
            missing = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: r[order.column], reverse=order.descending)
            rows = missing + present if order.descending else present + missing
        total = len(rows)
        if window is not None:
            rows = rows[window.start : window.end + 1]
        if columns.strip() != "*":
            wanted = [c.strip() for c in columns.split(",") if c.strip()]
            rows = [{c: r.get(c) for c in wanted} for r in rows]
        return SelectResult(rows=copy.deepcopy(rows), count=total if count else None)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        self.calls.append(("insert", table))
        record = dict(row)
        record.setdefault("id", str(uuid4()))
        stamp = self._stamp()
        record.setdefault("created_at", stamp)
        record.setdefault("updated_at", stamp)
        self._rows(table).append(record)
        return copy.deepcopy(record)

    def update(self, table: str, patch: Mapping[str, Any], *, filters: Sequence[Filter]) -> None:
        self.calls.append(("update", table))
        for row in self._rows(table):
            if _matches(row, filters):
                row.update(dict(patch))
                row["updated_at"] = _now_iso()

    def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> dict:
        self.calls.append(("upsert", table))
        keys = [k.strip() for k in on_conflict.split(",") if k.strip()]
        for existing in self._rows(table):
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(dict(row))
                existing["updated_at"] = _now_iso()
                return copy.deepcopy(existing)
        return self.insert(table, row)

    def delete(self, table: str, *, filters: Sequence[Filter]) -> None:
        self.calls.append(("delete", table))
        doomed = [r for r in self._rows(table) if _matches(r, filters)]
        for parent in doomed:
            for child_table, child_column in self.references.get(table, []):
                if any(c.get(child_column) == parent.get("id") for c in self._rows(child_table)):
                    raise GatewayError(
                        f'update or delete on table "{table}" violates foreign key constraint on table "{child_table}"',
                        code=FOREIGN_KEY_VIOLATION,
                    )
        doomed_ids = {id(r) for r in doomed}
        self.tables[table] = [r for r in self._rows(table) if id(r) not in doomed_ids]

    def rpc(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Any:
        self.calls.append(("rpc", name))
        handler = self.rpc_handlers.get(name)
        if handler is None:
            raise GatewayError(f"Could not find the function public.{name}", code="PGRST202")
        return handler(dict(args or {}))


def lms_references() -> Dict[str, List[Tuple[str, str]]]:
    """Foreign keys of the LMS schema that matter to the services."""
    return {
        "tasks": [("submissions", "task_id"), ("grades", "task_id")],
    }


__all__ = ["InMemoryDataGateway", "lms_references"]

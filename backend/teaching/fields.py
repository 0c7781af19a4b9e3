"""
Tagged per-column updates for partial writes.

Why:
    A PATCH must distinguish "leave the column alone" from "write null".
    Relying on value absence (None vs missing) is ambiguous, so every column of
    a change set carries one of:

    - UNCHANGED   – column is not part of the write
    - SetTo(v)    – write value v
    - CLEAR       – write null
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Mapping, TypeVar, Union

T = TypeVar("T")


class _Unchanged:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False


class _Clear:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CLEAR"


UNCHANGED = _Unchanged()
CLEAR = _Clear()


@dataclass(frozen=True)
class SetTo(Generic[T]):
    value: T


FieldUpdate = Union[_Unchanged, _Clear, SetTo]


def from_payload(payload: Mapping[str, Any], name: str) -> FieldUpdate:
    """Map a JSON body key to a FieldUpdate (missing → UNCHANGED, null → CLEAR)."""
    if name not in payload:
        return UNCHANGED
    value = payload[name]
    if value is None:
        return CLEAR
    return SetTo(value)


__all__ = ["UNCHANGED", "CLEAR", "SetTo", "FieldUpdate", "from_payload"]

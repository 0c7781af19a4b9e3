"""Remote data gateway: port, Supabase adapter and in-memory fake.

Re-export the common names for convenient imports in services and tests.
"""

from .memory import InMemoryDataGateway, lms_references
from .ports import (
    FOREIGN_KEY_VIOLATION,
    NO_ROWS,
    DataGatewayProtocol,
    Filter,
    GatewayError,
    Order,
    SelectResult,
    Window,
    eq,
    ilike_contains,
    select_maybe_one,
)

__all__ = [
    "FOREIGN_KEY_VIOLATION",
    "NO_ROWS",
    "DataGatewayProtocol",
    "Filter",
    "GatewayError",
    "InMemoryDataGateway",
    "Order",
    "SelectResult",
    "Window",
    "eq",
    "ilike_contains",
    "lms_references",
    "select_maybe_one",
]

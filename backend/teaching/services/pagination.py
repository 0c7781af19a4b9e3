"""Page result + window validation shared by the listing services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from common.errors import ValidationError
from gateway.ports import Window


@dataclass
class Page:
    items: List[dict] = field(default_factory=list)
    count: int = 0
    page: int = 1
    page_size: int = 10


def window_for(page: object, page_size: object) -> Window:
    """Return the inclusive row window for a 1-based page.

    Only positivity is enforced here; upper bounds are an adapter concern.
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("La página debe ser un entero positivo", code="invalid_page")
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ValidationError("El tamaño de página debe ser un entero positivo", code="invalid_page_size")
    return Window.for_page(page, page_size)


def normalize_search(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Búsqueda inválida", code="invalid_search")
    trimmed = value.strip()
    return trimmed or None

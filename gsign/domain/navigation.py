"""Ruta inicial tras login, según las páginas concedidas."""

from __future__ import annotations

from typing import Iterable

from .entities import Page

DEFAULT_FALLBACK_ROUTE = "/general"
MIS_DOCUMENTOS_PATH = "/gsign/mis-documentos"


def get_initial_route(
    pages: Iterable[Page],
    fallback: str = DEFAULT_FALLBACK_ROUTE,
    preferred: str = MIS_DOCUMENTOS_PATH,
) -> str:
    """
    1) La página preferida si está concedida.
    2) Si no, la de menor `order` (sin order cuenta como 0; empate por path).
    3) Sin páginas con path => fallback.
    """
    candidates = [p for p in pages if p.path]
    if any(p.path == preferred for p in candidates):
        return preferred
    if not candidates:
        return fallback

    first = min(candidates, key=lambda p: (p.order or 0, p.path))
    return first.path

"""
===============================================================================
TARJETA CRC — infrastructure/http/envelope.py
===============================================================================

Módulo:
    Normalización de respuestas "especiales" del backend REST

Responsabilidades:
    - unwrap: sobre {status, data} -> data (o el valor directo).
    - to_list: lista directa, {status, data}, {items} o {rows} -> list.
    - normalize_list: como to_list, pero un {status>=400, data:str} en un
      endpoint de lista es "sin resultados" y otro status>=400 es error.
    - normalize_one: {status>=400} -> ApiEnvelopeError; si no, data.

Colaboradores:
    - infrastructure.http.profile_client / notifications_client.
    - crosscutting.exceptions.ApiEnvelopeError.
===============================================================================
"""

from __future__ import annotations

from typing import Any, Mapping

from ...crosscutting.exceptions import ApiEnvelopeError

_BUSINESS_ERROR = "Error de negocio"


def _is_envelope(value: Any) -> bool:
    return isinstance(value, Mapping) and "status" in value and "data" in value


def _envelope_status(value: Mapping[str, Any]) -> int:
    status = value.get("status")
    if isinstance(status, bool) or not isinstance(status, (int, float)):
        return 200
    return int(status)


def _raise_for(value: Mapping[str, Any]) -> None:
    data = value.get("data")
    message = data if isinstance(data, str) else _BUSINESS_ERROR
    raise ApiEnvelopeError(message, status=_envelope_status(value), payload=data)


def unwrap(value: Any) -> Any:
    """Devuelve el payload real desde un sobre {status,data} o el valor directo."""
    if _is_envelope(value):
        return value["data"]
    return value


def to_list(value: Any) -> list:
    """Convierte las formas conocidas de lista a `list` (vacía si no aplica)."""
    if isinstance(value, list):
        return value
    if not value:
        return []
    unwrapped = unwrap(value)
    if isinstance(unwrapped, list):
        return unwrapped
    if isinstance(unwrapped, Mapping):
        for key in ("items", "rows"):
            if isinstance(unwrapped.get(key), list):
                return unwrapped[key]
    return []


def normalize_list(value: Any) -> list:
    """
    Raises:
        ApiEnvelopeError: sobre con status >= 400 cuyo data no es un texto.
    """
    items = to_list(value)
    if items:
        return items

    if _is_envelope(value):
        if _envelope_status(value) >= 400:
            # "No hay ..." en endpoints de lista no es un error fatal.
            if isinstance(value["data"], str):
                return []
            _raise_for(value)
        return to_list(value["data"])

    return []


def normalize_one(value: Any) -> Any:
    """
    Raises:
        ApiEnvelopeError: sobre con status >= 400.
    """
    if _is_envelope(value):
        if _envelope_status(value) >= 400:
            _raise_for(value)
        return value["data"]
    return value

"""
===============================================================================
TARJETA CRC — domain/signatures.py
===============================================================================

Módulo:
    Estado de firma del usuario sobre un documento

Responsabilidades:
    - Normalizar las dos formas conocidas del documento (lista directa
      `signatureEntries` o anidada en `cuadro_firma.cuadro_firma_user`) a
      SignatureEntry canónicos.
    - Calcular {assigned, signed, last_signed_at} para un usuario.
    - Filtrar listados por "mis firmas" (ALL / SIGNED / UNSIGNED).

Colaboradores:
    - domain.entities: SignatureEntry, SignInfo, to_finite_number.

Reglas:
    - Funciones puras. Datos malformados degradan a "no asignado",
      nunca lanzan.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from .entities import NOT_ASSIGNED, SignatureEntry, SignInfo, to_finite_number

_ENTRIES_KEY = "signatureEntries"
_CUADRO_KEY = "cuadro_firma"
_CUADRO_USERS_KEY = "cuadro_firma_user"


def _parse_fecha_firma(value: Any) -> Optional[datetime]:
    """datetime, ISO-8601 (naive = UTC) o epoch en milisegundos."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _entry_user_id(raw: Mapping[str, Any]) -> Optional[float]:
    candidate = raw.get("user_id")
    if candidate is None:
        candidate = raw.get("userId")
    if candidate is None:
        user = raw.get("user")
        if isinstance(user, Mapping):
            for key in ("id", "user_id", "userId"):
                if user.get(key) is not None:
                    candidate = user.get(key)
                    break
    return to_finite_number(candidate)


def _to_entry(raw: Mapping[str, Any]) -> SignatureEntry:
    return SignatureEntry(
        user_id=_entry_user_id(raw),
        esta_firmado=raw.get("estaFirmado") is True,
        fecha_firma=_parse_fecha_firma(raw.get("fecha_firma")),
    )


def extract_signature_entries(document: Any) -> list[SignatureEntry]:
    """
    Adapter: documento del backend -> lista canónica de SignatureEntry.

    La lista directa tiene prioridad; si ninguna forma está presente,
    devuelve lista vacía.
    """
    if not isinstance(document, Mapping):
        return []

    raw_entries = document.get(_ENTRIES_KEY)
    if not isinstance(raw_entries, list):
        cuadro = document.get(_CUADRO_KEY)
        raw_entries = (
            cuadro.get(_CUADRO_USERS_KEY) if isinstance(cuadro, Mapping) else None
        )
    if not isinstance(raw_entries, list):
        return []

    return [_to_entry(raw) for raw in raw_entries if isinstance(raw, Mapping)]


def resolve_sign_info(entries: Iterable[SignatureEntry], user_id: Any) -> SignInfo:
    """
    Estado de firma de `user_id` sobre todas sus asignaciones.

    Varias entradas firmadas del mismo usuario (roles distintos) son
    esperables: se devuelve la fecha más reciente.
    """
    normalized = to_finite_number(user_id)
    if normalized is None:
        return NOT_ASSIGNED

    mine = [e for e in entries if e.user_id is not None and e.user_id == normalized]
    if not mine:
        return NOT_ASSIGNED

    signed_dates = [
        e.fecha_firma for e in mine if e.esta_firmado and e.fecha_firma is not None
    ]
    return SignInfo(
        assigned=True,
        signed=any(e.esta_firmado for e in mine),
        last_signed_at=max(signed_dates) if signed_dates else None,
    )


def get_my_sign_info(document: Any, user_id: Any) -> SignInfo:
    return resolve_sign_info(extract_signature_entries(document), user_id)


# ---------------------------------------------------------------------------
# Filtro "mis firmas"
# ---------------------------------------------------------------------------


class MySignFilter(str, Enum):
    ALL = "ALL"
    SIGNED = "SIGNED"
    UNSIGNED = "UNSIGNED"

    def to_query(self) -> str:
        return self.value.lower()

    @classmethod
    def from_query(cls, value: Optional[str]) -> "MySignFilter":
        """Valor desconocido o vacío => ALL."""
        normalized = (value or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            return cls.ALL


def filter_by_my_sign(
    documents: Iterable[Any], user_id: Any, sign_filter: MySignFilter
) -> list[Any]:
    docs = list(documents)
    if sign_filter is MySignFilter.ALL:
        return docs

    result = []
    for doc in docs:
        info = get_my_sign_info(doc, user_id)
        if sign_filter is MySignFilter.SIGNED and info.signed:
            result.append(doc)
        elif sign_filter is MySignFilter.UNSIGNED and info.unsigned:
            result.append(doc)
    return result

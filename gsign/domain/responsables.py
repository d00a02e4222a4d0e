"""
Name: Responsables Builder

Responsibilities:
  - Turn loosely shaped user records (selector options, user listings)
    into ResponsablePayload rows tagged with their responsibility id
  - Build the per-document ResponsablesPayload sent on assignment

Collaborators:
  - domain.entities: ResponsablePayload, ResponsablesPayload, RESPONSABILIDAD_ID

Notes:
  - A user may appear in several lists; rows are never deduplicated
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from .entities import (
    RESPONSABILIDAD_ID,
    ResponsabilidadRole,
    ResponsablePayload,
    ResponsablesPayload,
    to_finite_number,
)

_ID_KEYS = ("id", "userId", "usuarioId", "user_id", "usuario_id", "uid", "value")

# Each tuple is one name part, in display order, with its known spellings.
_NAME_PARTS = (
    ("primer_nombre", "primerNombre", "first_name", "firstName"),
    ("segundo_name", "segundoNombre", "middle_name", "middleName"),
    ("tercer_nombre", "tercerNombre"),
    ("primer_apellido", "primerApellido", "last_name", "lastName"),
    ("segundo_apellido", "segundoApellido", "second_last_name", "secondLastName"),
    ("apellido_casada", "apellidoCasada", "married_name", "marriedName"),
)

_WHITESPACE = re.compile(r"\s+")


def _nested_name(user: Mapping[str, Any], key: str) -> Any:
    value = user.get(key)
    return value.get("nombre") if isinstance(value, Mapping) else None


def _first_non_empty(values: Iterable[Any]) -> str:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _extract_id(user: Mapping[str, Any]) -> Optional[int]:
    raw = next((user[k] for k in _ID_KEYS if user.get(k) is not None), None)
    number = to_finite_number(raw)
    if number is None or not number.is_integer():
        return None
    return int(number)


def full_name(user: Mapping[str, Any]) -> str:
    parts = [_first_non_empty(user.get(k) for k in keys) for keys in _NAME_PARTS]
    parts = [p for p in parts if p]
    if parts:
        return _WHITESPACE.sub(" ", " ".join(parts)).strip()

    for key in ("nombre", "name"):
        if isinstance(user.get(key), str):
            return user[key].strip()
    return ""


def _extract_position(user: Mapping[str, Any]) -> str:
    return _first_non_empty(
        [
            user.get("posicionNombre"),
            _nested_name(user, "posicion"),
            user.get("puesto"),
            user.get("position"),
            user.get("cargo"),
        ]
    )


def _extract_gerencia(user: Mapping[str, Any]) -> str:
    return _first_non_empty(
        [
            user.get("gerenciaNombre"),
            _nested_name(user, "gerencia"),
            user.get("gerencia"),
            user.get("department"),
            user.get("departamento"),
        ]
    )


def to_responsable(
    user: Mapping[str, Any], role: ResponsabilidadRole
) -> ResponsablePayload:
    """
    Raises:
        ValueError: if the user record has no numeric identifier
    """
    user_id = _extract_id(user) if isinstance(user, Mapping) else None
    if user_id is None:
        raise ValueError("El usuario seleccionado no tiene un identificador válido")

    return ResponsablePayload(
        user_id=user_id,
        nombre=full_name(user),
        puesto=_extract_position(user),
        gerencia=_extract_gerencia(user),
        responsabilidad_id=RESPONSABILIDAD_ID[ResponsabilidadRole(role)],
    )


def build_responsables(
    elabora: Optional[Mapping[str, Any]] = None,
    revisa: Optional[Iterable[Mapping[str, Any]]] = None,
    aprueba: Optional[Iterable[Mapping[str, Any]]] = None,
    enterado: Optional[Iterable[Mapping[str, Any]]] = None,
) -> ResponsablesPayload:
    def _rows(users, role):
        return tuple(to_responsable(u, role) for u in (users or ()))

    return ResponsablesPayload(
        elabora=to_responsable(elabora, ResponsabilidadRole.ELABORA)
        if elabora is not None
        else None,
        revisa=_rows(revisa, ResponsabilidadRole.REVISA),
        aprueba=_rows(aprueba, ResponsabilidadRole.APRUEBA),
        enterado=_rows(enterado, ResponsabilidadRole.ENTERADO),
    )

"""
===============================================================================
TARJETA CRC — domain/entities.py
===============================================================================

Módulo:
    Entidades del Dominio (Page, Session, Responsables, SignatureEntry,
    SignInfo, Notification)

Responsabilidades:
    - Definir estructuras centrales del portal (sin infraestructura).
    - Parsear de forma tolerante los payloads del backend REST.
    - Mantener tipos claros para identity/, realtime/ y api/.

Colaboradores:
    - identity.session_resolver: construye Session desde /users/me.
    - identity.guard: consulta pages/roles.
    - domain.signatures: produce SignatureEntry / SignInfo.
    - realtime.notifications: mantiene Notification en memoria.

Principios:
    - Sin dependencias a FastAPI/httpx/websockets.
    - Inmutables (frozen): son snapshots, los consumidores solo leen.
===============================================================================
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


def to_finite_number(value: Any) -> Optional[float]:
    """
    Normaliza un id "numérico" venido del backend.

    Acepta int/float finitos y strings numéricos. bool NO es un id.
    Devuelve None si no se puede normalizar (nunca lanza).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _to_int_id(value: Any) -> Optional[int]:
    number = to_finite_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Page / Session
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Page:
    """
    Unidad de entitlement: una ruta (prefijo) y/o un código de capacidad.

    `path` es un prefijo con límite de segmento: "/docs" cubre "/docs" y
    "/docs/123", pero NO "/documents".
    """

    id: int
    code: str
    name: str
    path: str
    icon: Optional[str] = None
    order: Optional[int] = None

    def covers(self, requested_path: str) -> bool:
        if not self.path:
            return False
        if requested_path == self.path:
            return True
        prefix = self.path.rstrip("/") + "/"
        # "/" solo se cubre a sí mismo.
        if prefix == "/":
            return False
        return requested_path.startswith(prefix)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Page":
        order = data.get("order")
        return cls(
            id=_to_int_id(data.get("id")) or 0,
            code=str(data.get("code") or ""),
            name=str(data.get("name") or ""),
            path=str(data.get("path") or ""),
            icon=data.get("icon") or None,
            order=_to_int_id(order) if order is not None else None,
        )


ADMIN_ROLE = "ADMIN"
SUPERVISOR_ROLE = "SUPERVISOR"


@dataclass(frozen=True, slots=True)
class Session:
    """Snapshot de identidad/entitlements para la credencial vigente."""

    user_id: int
    display_name: str
    pages: tuple[Page, ...] = ()
    roles: tuple[str, ...] = ()
    signature_url: Optional[str] = None
    has_signature: bool = False
    email: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    @property
    def is_supervisor(self) -> bool:
        return SUPERVISOR_ROLE in self.roles

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Session":
        """
        Parsea el body de /users/me.

        Raises:
            ValueError: si el payload no trae un id numérico de usuario.
        """
        if not isinstance(data, Mapping):
            raise ValueError("el perfil no es un objeto")

        user_id = _to_int_id(data.get("id"))
        if user_id is None:
            raise ValueError("el perfil no trae un id de usuario válido")

        raw_pages = data.get("pages") or []
        pages = tuple(
            Page.from_payload(p) for p in raw_pages if isinstance(p, Mapping)
        )
        raw_roles = data.get("roles") or []
        roles = tuple(str(r) for r in raw_roles if isinstance(r, str) and r)

        return cls(
            user_id=user_id,
            display_name=str(data.get("nombre") or ""),
            pages=pages,
            roles=roles,
            signature_url=data.get("signatureUrl") or None,
            has_signature=bool(data.get("hasSignature", False)),
            email=data.get("correo") or None,
            avatar_url=_first_present(data, "avatarUrl", "urlFoto"),
        )


# ---------------------------------------------------------------------------
# Responsables (flujo de firma)
# ---------------------------------------------------------------------------


class ResponsabilidadRole(str, Enum):
    """Rol de responsabilidad dentro del cuadro de firmas."""

    ELABORA = "ELABORA"
    REVISA = "REVISA"
    APRUEBA = "APRUEBA"
    ENTERADO = "ENTERADO"


RESPONSABILIDAD_ID: dict[ResponsabilidadRole, int] = {
    ResponsabilidadRole.REVISA: 1,
    ResponsabilidadRole.APRUEBA: 2,
    ResponsabilidadRole.ENTERADO: 3,
    ResponsabilidadRole.ELABORA: 4,
}


@dataclass(frozen=True, slots=True)
class ResponsablePayload:
    user_id: int
    nombre: str
    puesto: str
    gerencia: str
    responsabilidad_id: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "nombre": self.nombre,
            "puesto": self.puesto,
            "gerencia": self.gerencia,
            "responsabilidadId": self.responsabilidad_id,
        }


@dataclass(frozen=True, slots=True)
class ResponsablesPayload:
    """
    Asignaciones por documento.

    Un mismo usuario puede aparecer en varias listas: son asignaciones
    independientes, no se deduplican.
    """

    elabora: Optional[ResponsablePayload] = None
    revisa: tuple[ResponsablePayload, ...] = ()
    aprueba: tuple[ResponsablePayload, ...] = ()
    enterado: tuple[ResponsablePayload, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "revisa": [r.to_dict() for r in self.revisa],
            "aprueba": [r.to_dict() for r in self.aprueba],
            "enterado": [r.to_dict() for r in self.enterado],
        }
        if self.elabora is not None:
            payload["elabora"] = self.elabora.to_dict()
        return payload


# ---------------------------------------------------------------------------
# Firmas
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SignatureEntry:
    """Hecho de firma: una fila por asignación de responsabilidad."""

    user_id: Optional[float]
    esta_firmado: bool
    fecha_firma: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class SignInfo:
    assigned: bool
    signed: bool
    last_signed_at: Optional[datetime] = None

    @property
    def unsigned(self) -> bool:
        """Asignado y sin ninguna firma propia."""
        return self.assigned and not self.signed


NOT_ASSIGNED = SignInfo(assigned=False, signed=False, last_signed_at=None)


# ---------------------------------------------------------------------------
# Notificaciones
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Notification:
    id: int
    title: str
    created_at: str
    message: str = ""
    is_read: bool = False
    href: Optional[str] = None
    icon: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Notification":
        """
        Adapta registros del backend (REST o socket) con nombres variables.

        Raises:
            ValueError: si no trae un id numérico.
        """
        notification_id = _to_int_id(_first_present(data, "id", "notificationId"))
        if notification_id is None:
            raise ValueError("la notificación no trae un id válido")

        created_at = _first_present(data, "fechaCreacion", "createdAt", "add_date")
        updated_at = _first_present(data, "updated_at", "updatedAt")
        message = _first_present(data, "descripcion", "message", "contenido")
        return cls(
            id=notification_id,
            title=str(_first_present(data, "titulo", "title") or "Notificación"),
            created_at=str(created_at or datetime.now(timezone.utc).isoformat()),
            message=str(message or ""),
            is_read=bool(_first_present(data, "estaLeida", "read", "isRead")),
            href=_first_present(data, "url", "href"),
            icon=_first_present(data, "tipo", "type"),
            updated_at=str(updated_at) if updated_at is not None else None,
        )


def notifications_from_payload(raw_items: Iterable[Any]) -> list[Notification]:
    """Adapta una lista suelta; registros sin id válido se ignoran."""
    result = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            continue
        try:
            result.append(Notification.from_payload(raw))
        except ValueError:
            continue
    return result

"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Módulo:
    Exportaciones de la Capa de Dominio (API pública del dominio)

Responsabilidades:
    - Centralizar exports para imports limpios en identity/realtime/api.
    - Mantener estable el “surface area” del dominio.

Reglas:
    - Solo re-exporta contratos/entidades del dominio.
    - No importar infraestructura aquí.
===============================================================================
"""

from .entities import (
    RESPONSABILIDAD_ID,
    Notification,
    Page,
    ResponsabilidadRole,
    ResponsablePayload,
    ResponsablesPayload,
    Session,
    SignatureEntry,
    SignInfo,
)
from .navigation import get_initial_route
from .responsables import build_responsables, to_responsable
from .services import (
    NotificationsGateway,
    ProfileProvider,
    RealtimeTransport,
    TransportListener,
    TransportSession,
)
from .signatures import (
    MySignFilter,
    extract_signature_entries,
    filter_by_my_sign,
    get_my_sign_info,
    resolve_sign_info,
)

__all__ = [
    # Entidades
    "Page",
    "Session",
    "ResponsabilidadRole",
    "RESPONSABILIDAD_ID",
    "ResponsablePayload",
    "ResponsablesPayload",
    "SignatureEntry",
    "SignInfo",
    "Notification",
    # Puertos
    "ProfileProvider",
    "NotificationsGateway",
    "RealtimeTransport",
    "TransportSession",
    "TransportListener",
    # Funciones puras
    "extract_signature_entries",
    "resolve_sign_info",
    "get_my_sign_info",
    "MySignFilter",
    "filter_by_my_sign",
    "to_responsable",
    "build_responsables",
    "get_initial_route",
]

# infrastructure/http/__init__.py
"""
============================================================
TARJETA CRC — infrastructure/http/__init__.py
============================================================
Module: infrastructure.http (Public Export Surface)

Responsibilities:
  - Exponer los clientes HTTP del backend REST y los helpers de sobre.

Policy:
  - Solo re-exporta símbolos; no debe tener side effects.
============================================================
"""

from .envelope import normalize_list, normalize_one, to_list, unwrap
from .notifications_client import HttpNotificationsClient, NotificationsClientError
from .profile_client import HttpProfileClient

__all__ = [
    "HttpProfileClient",
    "HttpNotificationsClient",
    "NotificationsClientError",
    "unwrap",
    "to_list",
    "normalize_list",
    "normalize_one",
]

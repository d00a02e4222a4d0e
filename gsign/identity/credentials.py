"""
===============================================================================
TARJETA CRC — identity/credentials.py
===============================================================================

Módulo:
    Helpers de credencial (bearer token)

Responsabilidades:
    - Extraer token desde `Authorization: Bearer` o desde la cookie HTTP-only.
    - Producir un fingerprint corto y seguro para logs (nunca el token).
    - Leer claims SIN verificar firma, solo para contexto de logs.

Colaboradores:
    - api.dependencies / api.proxy: resuelven la credencial del caller.

Decisiones:
    - La autorización la decide el backend y la Session resuelta; los claims
      leídos acá NUNCA se usan para permitir/denegar.
===============================================================================
"""

from __future__ import annotations

import hashlib
from typing import Any

import jwt
from fastapi import Request

_FINGERPRINT_LEN = 12

# Claims que se consideran seguros para adjuntar a un log.
_LOGGABLE_CLAIMS = ("sub", "exp", "iat", "role", "roles")


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extrae token desde `Authorization: Bearer <token>`."""
    if not authorization:
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def extract_access_token(
    request: Request, authorization: str | None, cookie_name: str
) -> str | None:
    """Resuelve token desde Authorization o, si falta, desde la cookie `cookie_name`."""
    token = extract_bearer_token(authorization)
    if token:
        return token

    return (request.cookies.get(cookie_name) or "").strip() or None


def credential_fingerprint(credential: str | None) -> str:
    """Hash corto para logging seguro (nunca loguear en claro)."""
    if not credential:
        return ""
    digest = hashlib.sha256(credential.encode("utf-8")).hexdigest()
    return digest[:_FINGERPRINT_LEN]


def peek_claims(credential: str | None) -> dict[str, Any]:
    """
    Decodifica el JWT sin verificar firma ni expiración.

    Devuelve solo claims "loggables"; token opaco o malformado => {}.
    """
    if not credential:
        return {}
    try:
        claims = jwt.decode(
            credential,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.InvalidTokenError:
        return {}
    if not isinstance(claims, dict):
        return {}
    return {k: claims[k] for k in _LOGGABLE_CLAIMS if k in claims}

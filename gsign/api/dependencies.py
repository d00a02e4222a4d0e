"""
===============================================================================
TARJETA CRC — gsign/api/dependencies.py (Dependencias FastAPI)
===============================================================================

Responsabilidades:
  - Exponer el httpx.AsyncClient y los Settings de la app (app.state).
  - Construir el ProfileProvider del request (override-able en tests).
  - require_access(requirement): resolver la Session del caller y evaluar el
    mismo Guard que usa el cliente; nunca "fail open".

Colaboradores:
  - identity.credentials.extract_access_token
  - identity.guard (evaluate, GuardPolicy, Decision)
  - infrastructure.http.profile_client.HttpProfileClient
  - crosscutting.error_responses (unauthorized/forbidden RFC7807)
===============================================================================
"""

from __future__ import annotations

from typing import Callable

import httpx
from fastapi import Depends, Header, Request

from ..crosscutting.config import Settings
from ..crosscutting.error_responses import forbidden, unauthorized
from ..crosscutting.exceptions import SessionResolutionError
from ..crosscutting.logger import logger
from ..domain.entities import Session
from ..domain.services import ProfileProvider
from ..identity.credentials import (
    credential_fingerprint,
    extract_access_token,
    peek_claims,
)
from ..identity.guard import Decision, GuardPolicy, Requirement, evaluate
from ..identity.session_resolver import SessionStatus
from ..infrastructure.http.profile_client import HttpProfileClient


def get_app_settings(request: Request) -> Settings:
    """Settings con los que se construyó la app (create_app)."""
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_profile_provider(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
) -> ProfileProvider:
    return HttpProfileClient(client, settings.profile_path)


def require_access(requirement: Requirement) -> Callable:
    """Dependency FastAPI: 401 sin credencial, 403 si el Guard deniega."""

    async def dependency(
        request: Request,
        authorization: str | None = Header(None, alias="Authorization"),
        profiles: ProfileProvider = Depends(get_profile_provider),
        settings: Settings = Depends(get_app_settings),
    ) -> Session:
        token = extract_access_token(
            request, authorization, settings.access_token_cookie_name
        )
        if not token:
            raise unauthorized()

        session: Session | None = None
        status = SessionStatus.RESOLVED
        try:
            session = await profiles.fetch_session(token)
        except SessionResolutionError as exc:
            if exc.status_code == 401:
                raise unauthorized("Credencial inválida o expirada") from exc
            status = SessionStatus.ERROR

        decision = evaluate(
            session, status, requirement, GuardPolicy.from_settings(settings)
        )
        if decision is not Decision.ALLOW:
            logger.info(
                "acceso denegado",
                extra={
                    "credential_fp": credential_fingerprint(token),
                    "session_status": status.value,
                    "sub": peek_claims(token).get("sub"),
                },
            )
            raise forbidden()
        return session

    return dependency

"""
Name: BFF Proxy Routes

Responsibilities:
  - Mount the cookie-derived credential variants (users/me, auth refresh/logout,
    supervision listing)
  - Mount GET/PUT on a role's page list; PUT gated behind the admin roles
  - Mount the catch-all proxy for every other upstream path

Collaborators:
  - api.proxy.forward: the actual forwarding
  - api.dependencies: shared http client, require_access
  - crosscutting.config.Settings: prefix, cookie paths, admin roles

Notes:
  - Registration order matters: specific routes first, catch-all last
"""

from __future__ import annotations

from typing import Callable

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..crosscutting.config import Settings
from ..identity.guard import RoleRequirement
from .dependencies import get_http_client, require_access
from .proxy import forward

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


def _cookie_proxy(upstream_path: str, cookie_name: str) -> Callable:
    async def endpoint(
        request: Request, client: httpx.AsyncClient = Depends(get_http_client)
    ) -> Response:
        token = (request.cookies.get(cookie_name) or "").strip() or None
        return await forward(request, client, upstream_path, credential=token)

    endpoint.__name__ = "cookie_proxy_" + upstream_path.strip("/").replace("/", "_")
    return endpoint


async def get_role_pages(
    role_id: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    return await forward(request, client, f"/roles/{role_id}/paginas")


async def put_role_pages(
    role_id: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    return await forward(request, client, f"/roles/{role_id}/paginas")


async def proxy_any(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    return await forward(request, client, "/" + path)


def build_router(settings: Settings) -> APIRouter:
    router = APIRouter(prefix=settings.proxy_prefix, tags=["proxy"])

    for upstream_path in sorted(settings.get_cookie_credential_paths()):
        router.add_api_route(
            upstream_path,
            _cookie_proxy(upstream_path, settings.access_token_cookie_name),
            methods=PROXY_METHODS,
            include_in_schema=False,
        )

    router.add_api_route(
        "/roles/{role_id}/paginas", get_role_pages, methods=["GET"]
    )
    router.add_api_route(
        "/roles/{role_id}/paginas",
        put_role_pages,
        methods=["PUT"],
        dependencies=[
            Depends(
                require_access(RoleRequirement(settings.get_entitlement_admin_roles()))
            )
        ],
    )

    router.add_api_route(
        "/{path:path}", proxy_any, methods=PROXY_METHODS, include_in_schema=False
    )
    return router

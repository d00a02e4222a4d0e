"""
Name: BFF Proxy Routes Tests

Responsibilities:
  - Validate the generic proxy forwards method, headers, query and body
  - Validate upstream status, headers (multiple set-cookie) and body are returned as-is
  - Validate redirects are surfaced, not followed
  - Validate the cookie-derived credential variant
  - Validate the admin gate on PUT /roles/{id}/paginas (401/403 problem+json)
  - Validate 502 problem+json when the upstream is unreachable
  - Validate the gate reads cookie name and profile path from the app Settings

Notes:
  - Upstream is an httpx.MockTransport injected through create_app()
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import profile_payload
from gsign.api.main import create_app
from gsign.crosscutting.config import Settings
from gsign.crosscutting.error_responses import PROBLEM_JSON_MEDIA_TYPE

pytestmark = pytest.mark.unit

UPSTREAM = "http://upstream.test/api/v1"


class Upstream:
    """Fake del backend REST: perfil por token + registro de lo proxied."""

    def __init__(self, profile_path: str = "/api/v1/users/me"):
        self.profile_path = profile_path
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.response: httpx.Response | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == self.profile_path:
            auth = request.headers.get("authorization")
            if auth == "Bearer admin":
                return httpx.Response(200, json=profile_payload(1, roles=["ADMIN"]))
            if auth == "Bearer user":
                return httpx.Response(200, json=profile_payload(2, roles=["USER"]))
            return httpx.Response(401, json={"message": "Unauthorized"})
        self.requests.append(request)
        self.bodies.append(request.read())
        return self.response or httpx.Response(200, json={"ok": True})


def _client(upstream, **overrides) -> TestClient:
    settings = Settings(api_base_url=UPSTREAM, **overrides)
    app = create_app(settings, transport=httpx.MockTransport(upstream))
    return TestClient(app)


def test_forwards_method_headers_query_and_body():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.post(
            "/api/documents/cuadro-firmas?page=2",
            content=b'{"titulo": "Acta"}',
            headers={"Content-Type": "application/json", "X-Custom": "yes", "Authorization": "Bearer tok"},
        )

    assert response.status_code == 200
    forwarded = upstream.requests[0]
    assert forwarded.method == "POST"
    assert forwarded.url.path == "/api/v1/documents/cuadro-firmas"
    assert forwarded.url.params["page"] == "2"
    assert forwarded.headers["x-custom"] == "yes"
    assert forwarded.headers["authorization"] == "Bearer tok"
    assert forwarded.headers["host"] == "upstream.test"
    assert upstream.bodies[0] == b'{"titulo": "Acta"}'


def test_get_is_forwarded_without_body():
    upstream = Upstream()

    with _client(upstream) as client:
        client.get("/api/documents")

    assert upstream.requests[0].method == "GET"
    assert upstream.bodies[0] == b""


def test_upstream_response_is_returned_unmodified():
    upstream = Upstream()
    upstream.response = httpx.Response(
        409,
        headers=[("set-cookie", "a=1; Path=/"), ("set-cookie", "b=2; Path=/"), ("x-upstream", "yes")],
        content=b"conflicto",
    )

    with _client(upstream) as client:
        response = client.delete("/api/documents/9")

    assert response.status_code == 409
    assert response.content == b"conflicto"
    assert response.headers["x-upstream"] == "yes"
    assert response.headers.get_list("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]
    assert response.headers["x-request-id"]


def test_redirects_are_surfaced_not_followed():
    upstream = Upstream()
    upstream.response = httpx.Response(302, headers={"location": "https://sso.example.com/login"})

    with _client(upstream) as client:
        response = client.get("/api/auth/sso", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "https://sso.example.com/login"
    assert len(upstream.requests) == 1


def test_cookie_variant_attaches_credential_server_side():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.get(
            "/api/documents/cuadro-firmas/documentos/supervision",
            headers={"Cookie": "access_token=abc"},
        )

    assert response.status_code == 200
    assert upstream.requests[0].headers["authorization"] == "Bearer abc"


def test_cookie_variant_without_cookie_forwards_as_is():
    upstream = Upstream()

    with _client(upstream) as client:
        client.post("/api/auth/logout")

    assert "authorization" not in upstream.requests[0].headers


def test_role_pages_get_is_proxied_without_gate():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.get("/api/roles/5/paginas")

    assert response.status_code == 200
    assert upstream.requests[0].url.path == "/api/v1/roles/5/paginas"


def test_role_pages_put_without_credential_is_401():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.put("/api/roles/5/paginas", json={"pages": [1]})

    assert response.status_code == 401
    assert response.headers["content-type"].startswith(PROBLEM_JSON_MEDIA_TYPE)
    assert response.json()["code"] == "UNAUTHORIZED"
    assert upstream.requests == []


def test_role_pages_put_with_rejected_credential_is_401():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.put(
            "/api/roles/5/paginas", json={"pages": [1]}, headers={"Authorization": "Bearer expired"}
        )

    assert response.status_code == 401
    assert upstream.requests == []


def test_role_pages_put_requires_admin_role():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.put(
            "/api/roles/5/paginas", json={"pages": [1]}, headers={"Authorization": "Bearer user"}
        )

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"
    assert upstream.requests == []


def test_role_pages_put_as_admin_is_forwarded():
    upstream = Upstream()

    with _client(upstream) as client:
        response = client.put(
            "/api/roles/5/paginas", json={"pages": [1]}, headers={"Authorization": "Bearer admin"}
        )

    assert response.status_code == 200
    assert upstream.requests[0].method == "PUT"
    assert json.loads(upstream.bodies[0]) == {"pages": [1]}


def test_unreachable_upstream_is_502_problem():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    settings = Settings(api_base_url=UPSTREAM)
    app = create_app(settings, transport=httpx.MockTransport(refuse))

    with TestClient(app) as client:
        response = client.get("/api/documents")

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "BAD_GATEWAY"
    assert any("request_id" in item for item in body["errors"])


def test_custom_prefix():
    upstream = Upstream()

    with _client(upstream, proxy_prefix="bff/") as client:
        response = client.get("/bff/documents")

    assert response.status_code == 200
    assert upstream.requests[0].url.path == "/api/v1/documents"


def test_healthz_and_metrics():
    upstream = Upstream()

    with _client(upstream) as client:
        client.get("/api/documents")
        health = client.get("/healthz", headers={"X-Request-Id": "req-123"})
        metrics = client.get("/metrics")

    assert health.json() == {"ok": True, "request_id": "req-123"}
    assert health.headers["x-request-id"] == "req-123"
    assert metrics.status_code == 200
    assert b"gsign_proxy_upstream" in metrics.content


def test_admin_gate_uses_the_settings_the_app_was_built_with():
    upstream = Upstream(profile_path="/api/v1/me")

    with _client(upstream, profile_path="/me", access_token_cookie_name="sid") as client:
        allowed = client.put(
            "/api/roles/3/paginas", json={"pages": [1]}, headers={"Cookie": "sid=admin"}
        )
        default_cookie = client.put(
            "/api/roles/3/paginas", json={"pages": [1]}, headers={"Cookie": "access_token=admin"}
        )

    assert allowed.status_code == 200
    assert default_cookie.status_code == 401
    assert [r.url.path for r in upstream.requests] == ["/api/v1/roles/3/paginas"]

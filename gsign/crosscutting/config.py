"""
Name: Portal Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match the portal's routing conventions

Collaborators:
  - api/main.py: reads settings for CORS, proxy upstream and startup validation
  - container.py: reads settings for profile fetch, realtime and notifications
  - identity/guard.py: forbidden destination and empty-pages policy

Constraints:
  - Lives in infrastructure/crosscutting layer, NOT in domain
  - Typed configuration only; no portal logic

Notes:
  - Uses pydantic-settings for env parsing and validation
  - Singleton via lru_cache for performance
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_EMPTY_PAGES_POLICIES = {"deny", "fallback"}


class Settings(BaseSettings):
    """
    Portal settings loaded from environment variables.

    Attributes:
        app_env: Application environment (development/production)
        log_level: Logging level name (default: INFO)
        log_json: Emit JSON logs (default: True)
        api_base_url: Upstream REST backend base URL (proxy + profile fetch)
        proxy_prefix: Path prefix forwarded to the upstream (default: /api)
        profile_path: Profile endpoint path (default: /users/me)
        http_timeout_seconds: Timeout for upstream HTTP calls
        access_token_cookie_name: HTTP-only cookie holding the access token
        cookie_credential_paths: Comma-separated paths forwarded with the cookie credential
        socket_url: Realtime channel URL (ws:// or wss://)
        socket_open_timeout_seconds: Handshake timeout for the realtime channel
        socket_close_timeout_seconds: Close handshake timeout for the realtime channel
        forbidden_path: Fixed destination for denied routes (default: /403)
        fallback_route: Route used when a session grants no pages (default: /general)
        preferred_initial_route: Landing page when granted
        empty_pages_policy: deny|fallback for sessions without pages (default: deny)
        entitlement_admin_roles: Comma-separated roles allowed to edit role pages
        notifications_max_items: Max notifications kept in memory (default: 50)
        notifications_error_toast_window_seconds: Debounce for repeated error toasts
        allowed_origins: Comma-separated CORS origins
    """

    # Environment
    app_env: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Upstream REST backend
    api_base_url: str = "http://localhost:3200/api/v1"
    proxy_prefix: str = "/api"
    profile_path: str = "/users/me"
    http_timeout_seconds: float = 30.0

    # Credentials
    access_token_cookie_name: str = "access_token"
    cookie_credential_paths: str = (
        "/users/me,/auth/refresh,/auth/logout,"
        "/documents/cuadro-firmas/documentos/supervision"
    )

    # Realtime channel
    socket_url: str = "ws://localhost:3200/ws"
    socket_open_timeout_seconds: float = 10.0
    socket_close_timeout_seconds: float = 5.0

    # Routing / entitlements
    forbidden_path: str = "/403"
    fallback_route: str = "/general"
    preferred_initial_route: str = "/gsign/mis-documentos"
    empty_pages_policy: str = "deny"
    entitlement_admin_roles: str = "ADMIN"

    # Notifications
    notifications_max_items: int = 50
    notifications_error_toast_window_seconds: float = 60.0

    # CORS configuration
    allowed_origins: str = "http://localhost:3000"

    @field_validator("empty_pages_policy")
    @classmethod
    def empty_pages_policy_valid(cls, v: str) -> str:
        policy = (v or "deny").strip().lower()
        if policy not in _EMPTY_PAGES_POLICIES:
            raise ValueError("empty_pages_policy must be deny or fallback")
        return policy

    @field_validator(
        "http_timeout_seconds",
        "socket_open_timeout_seconds",
        "socket_close_timeout_seconds",
    )
    @classmethod
    def timeouts_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v

    @field_validator("notifications_max_items")
    @classmethod
    def notifications_max_items_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("notifications_max_items must be greater than 0")
        return v

    @field_validator("proxy_prefix")
    @classmethod
    def proxy_prefix_normalized(cls, v: str) -> str:
        prefix = "/" + (v or "").strip().strip("/")
        return "" if prefix == "/" else prefix

    @model_validator(mode="after")
    def validate_transport_security(self):
        if not self.is_production():
            return self

        if not self.api_base_url.strip().lower().startswith("https://"):
            raise ValueError("API_BASE_URL must use https in production")
        if not self.socket_url.strip().lower().startswith("wss://"):
            raise ValueError("SOCKET_URL must use wss in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return _split_csv(self.allowed_origins)

    def get_cookie_credential_paths(self) -> set[str]:
        """Paths (relative to the upstream) that take the cookie credential."""
        return {"/" + p.strip("/") for p in _split_csv(self.cookie_credential_paths)}

    def get_entitlement_admin_roles(self) -> frozenset[str]:
        return frozenset(_split_csv(self.entitlement_admin_roles))

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()

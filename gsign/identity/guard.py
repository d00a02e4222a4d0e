"""
===============================================================================
TARJETA CRC — identity/guard.py
===============================================================================

Módulo:
    Guard de rutas y acciones (entitlements de la Session)

Responsabilidades:
    - Definir requerimientos componibles: por página (path/código) y por rol,
      combinables con `&` (todos) y `|` (alguno).
    - evaluate(): predicado puro pending|allow|deny.
    - RouteGuard: máquina de estados con UNA transición con efecto
      (deny -> navegar una sola vez por instancia de sesión).

Colaboradores:
    - identity.session_resolver: SessionState / SessionStatus.
    - domain.entities: Session, Page.covers().
    - api.dependencies.require_access: mismo predicado del lado servidor.

Reglas:
    - loading => pending (ni render ni redirect, aunque haya session previa).
    - error o sin credencial => deny. Nunca "fail open".
    - Session sin páginas: política explícita (deny | fallback).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from ..crosscutting.logger import logger
from ..domain.entities import Session
from .session_resolver import SessionResolver, SessionState, SessionStatus


class Decision(str, Enum):
    PENDING = "pending"
    ALLOW = "allow"
    DENY = "deny"


class EmptyPagesPolicy(str, Enum):
    DENY = "deny"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class GuardPolicy:
    empty_pages: EmptyPagesPolicy = EmptyPagesPolicy.DENY
    fallback_route: str = "/general"

    @classmethod
    def from_settings(cls, settings) -> "GuardPolicy":
        return cls(
            empty_pages=EmptyPagesPolicy(settings.empty_pages_policy),
            fallback_route=settings.fallback_route,
        )


# ---------------------------------------------------------------------------
# Requerimientos
# ---------------------------------------------------------------------------


class Requirement:
    """Base de los requerimientos: se combinan con `&` y `|`."""

    def is_satisfied(self, session: Session, policy: GuardPolicy) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Requirement") -> "Requirement":
        return AllOf((self, other))

    def __or__(self, other: "Requirement") -> "Requirement":
        return AnyOf((self, other))


@dataclass(frozen=True)
class PageRequirement(Requirement):
    """
    Acceso a una ruta (`path`, con límite de segmento) o a un código de
    capacidad (`code`). Con ambos, alcanza con cualquiera.
    """

    path: Optional[str] = None
    code: Optional[str] = None

    def __post_init__(self):
        if not self.path and not self.code:
            raise ValueError("PageRequirement needs a path or a code")

    def is_satisfied(self, session: Session, policy: GuardPolicy) -> bool:
        if not session.pages:
            return self._empty_pages_allowed(policy)
        for page in session.pages:
            if self.path and page.covers(self.path):
                return True
            if self.code and page.code == self.code:
                return True
        return False

    def _empty_pages_allowed(self, policy: GuardPolicy) -> bool:
        if policy.empty_pages is not EmptyPagesPolicy.FALLBACK or not self.path:
            return False
        fallback = policy.fallback_route.rstrip("/") or "/"
        return self.path == fallback or self.path.startswith(fallback + "/")


@dataclass(frozen=True)
class RoleRequirement(Requirement):
    """Alguno de los roles aceptables está en session.roles."""

    roles: frozenset[str]

    def __init__(self, roles: str | Iterable[str]):
        accepted = frozenset([roles] if isinstance(roles, str) else roles)
        object.__setattr__(self, "roles", accepted)

    def is_satisfied(self, session: Session, policy: GuardPolicy) -> bool:
        return not self.roles.isdisjoint(session.roles)


@dataclass(frozen=True)
class AllOf(Requirement):
    requirements: tuple[Requirement, ...]

    def is_satisfied(self, session: Session, policy: GuardPolicy) -> bool:
        return all(r.is_satisfied(session, policy) for r in self.requirements)


@dataclass(frozen=True)
class AnyOf(Requirement):
    requirements: tuple[Requirement, ...]

    def is_satisfied(self, session: Session, policy: GuardPolicy) -> bool:
        return any(r.is_satisfied(session, policy) for r in self.requirements)


# ---------------------------------------------------------------------------
# Predicado puro
# ---------------------------------------------------------------------------


def evaluate(
    session: Optional[Session],
    status: SessionStatus,
    requirement: Requirement,
    policy: GuardPolicy = GuardPolicy(),
) -> Decision:
    if status is SessionStatus.LOADING:
        return Decision.PENDING
    if status is not SessionStatus.RESOLVED or session is None:
        return Decision.DENY
    if requirement.is_satisfied(session, policy):
        return Decision.ALLOW
    return Decision.DENY


# ---------------------------------------------------------------------------
# Guard con efecto (navegación)
# ---------------------------------------------------------------------------


class RouteGuard:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      RouteGuard

    Responsabilidades:
      - Re-evaluar el requerimiento en cada cambio de SessionState
      - Navegar a `forbidden_path` a lo sumo una vez por generación de sesión

    Colaboradores:
      - SessionResolver (watch)
      - navigate: callable provisto por la capa de presentación
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        requirement: Requirement,
        navigate: Callable[[str], None],
        *,
        forbidden_path: str = "/403",
        policy: GuardPolicy = GuardPolicy(),
    ):
        self._requirement = requirement
        self._navigate = navigate
        self._forbidden_path = forbidden_path
        self._policy = policy
        self._decision = Decision.PENDING
        self._redirected_generation: Optional[int] = None

    @property
    def decision(self) -> Decision:
        return self._decision

    @property
    def redirected(self) -> bool:
        return self._redirected_generation is not None

    def evaluate_state(self, state: SessionState) -> Decision:
        self._decision = evaluate(
            state.session, state.status, self._requirement, self._policy
        )
        if (
            self._decision is Decision.DENY
            and self._redirected_generation != state.generation
        ):
            self._redirected_generation = state.generation
            logger.info(
                "acceso denegado, redirigiendo",
                extra={"status": state.status.value, "target": self._forbidden_path},
            )
            self._navigate(self._forbidden_path)
        return self._decision

    def watch(self, resolver: SessionResolver) -> Callable[[], None]:
        """Evalúa el estado actual y luego cada cambio. Devuelve unsubscribe."""
        unsubscribe = resolver.subscribe(self.evaluate_state)
        self.evaluate_state(resolver.state)
        return unsubscribe

"""
Route-guard policy.

Each guard is an ordered list of (condition, outcome) rules evaluated against an
AuthState snapshot; the first matching condition decides. An outcome of None
allows the request, a path redirects there. While the state is loading no rule
runs and the decision is LOADING.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from fedrita.auth.context import AuthState
from fedrita.domain.models import Role

LOGIN_PATH = "/login"
HOME_PATH = "/"
COMPANY_SETUP_PATH = "/registro-empresa"
DASHBOARD_PATH = "/dashboard"
MANAGER_DASHBOARD_PATH = "/dashboard-manager"


class Guard(str, Enum):
    PROTECTED = "protected"
    COMPANY_SETUP = "company_setup"
    DASHBOARD = "dashboard"
    MANAGER = "manager"
    ADMIN_OR_MANAGER = "admin_or_manager"


class DecisionKind(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    LOADING = "loading"


@dataclass(frozen=True)
class GuardDecision:
    kind: DecisionKind
    location: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW


ALLOW = GuardDecision(DecisionKind.ALLOW)
LOADING = GuardDecision(DecisionKind.LOADING)

Condition = Callable[[AuthState], bool]


def _anonymous(state: AuthState) -> bool:
    return state.identity is None


def _setup_incomplete(state: AuthState) -> bool:
    return state.needs_setup and state.company is None


def _active_manager(state: AuthState) -> bool:
    return state.is_active_manager


def _active_admin(state: AuthState) -> bool:
    return state.role == Role.ADMIN and state.company is not None


def _always(state: AuthState) -> bool:
    return True


GUARD_RULES: dict[Guard, tuple[tuple[Condition, Optional[str]], ...]] = {
    Guard.PROTECTED: (
        (_anonymous, LOGIN_PATH),
        (_always, None),
    ),
    Guard.COMPANY_SETUP: (
        (_anonymous, LOGIN_PATH),
        (_setup_incomplete, None),
        (_always, DASHBOARD_PATH),
    ),
    Guard.DASHBOARD: (
        (_anonymous, LOGIN_PATH),
        (_active_manager, MANAGER_DASHBOARD_PATH),
        (_setup_incomplete, COMPANY_SETUP_PATH),
        (_always, None),
    ),
    Guard.MANAGER: (
        (_anonymous, LOGIN_PATH),
        (_active_manager, None),
        (_always, DASHBOARD_PATH),
    ),
    Guard.ADMIN_OR_MANAGER: (
        (_anonymous, LOGIN_PATH),
        (_active_admin, None),
        (_active_manager, None),
        (_setup_incomplete, COMPANY_SETUP_PATH),
        (_always, DASHBOARD_PATH),
    ),
}


def evaluate(guard: Optional[Guard], state: AuthState) -> GuardDecision:
    if guard is None:
        return ALLOW
    if state.loading:
        return LOADING
    for condition, target in GUARD_RULES[guard]:
        if condition(state):
            return ALLOW if target is None else GuardDecision(DecisionKind.REDIRECT, target)
    return ALLOW


@dataclass(frozen=True)
class PageRoute:
    path: str
    guard: Optional[Guard]
    page: str


ROUTES: tuple[PageRoute, ...] = (
    PageRoute("/", None, "home"),
    PageRoute("/login", None, "login"),
    PageRoute("/register", None, "register"),
    PageRoute(COMPANY_SETUP_PATH, Guard.COMPANY_SETUP, "company_registration"),
    PageRoute(DASHBOARD_PATH, Guard.DASHBOARD, "dashboard"),
    PageRoute(MANAGER_DASHBOARD_PATH, Guard.MANAGER, "dashboard_manager"),
    PageRoute("/crear-salon", Guard.DASHBOARD, "create_salon"),
    PageRoute("/mis-salones", Guard.DASHBOARD, "my_salons"),
    PageRoute("/crear-empleado", Guard.ADMIN_OR_MANAGER, "create_employee"),
    PageRoute("/mis-empleados", Guard.DASHBOARD, "my_employees"),
    PageRoute("/empleados-salon", Guard.MANAGER, "salon_employees"),
    PageRoute("/crear-reserva", Guard.ADMIN_OR_MANAGER, "create_appointment"),
    PageRoute("/mis-citas", Guard.DASHBOARD, "my_appointments"),
    PageRoute("/citas-salon", Guard.MANAGER, "salon_appointments"),
    PageRoute("/mis-clientes", Guard.DASHBOARD, "my_clients"),
    PageRoute("/clientes-salon", Guard.MANAGER, "salon_clients"),
    PageRoute("/conectar-whatsapp", Guard.DASHBOARD, "connect_whatsapp"),
    PageRoute("/me", Guard.PROTECTED, "account"),
)

_ROUTES_BY_PATH = {route.path: route for route in ROUTES}


def route_for(path: str) -> Optional[PageRoute]:
    """Exact lookup; sub-paths such as /mis-citas/<id> resolve to their page route."""
    route = _ROUTES_BY_PATH.get(path)
    if route is not None or path == HOME_PATH:
        return route
    parent = "/" + path.strip("/").split("/", 1)[0]
    return _ROUTES_BY_PATH.get(parent) if parent != path else None


def decide(path: str, state: AuthState) -> Optional[GuardDecision]:
    """Guard decision for a path, or None for paths outside the route table."""
    route = route_for(path)
    if route is None:
        return None
    return evaluate(route.guard, state)

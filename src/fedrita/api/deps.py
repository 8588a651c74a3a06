from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, Request

from fedrita.api.context_registry import ContextRegistry
from fedrita.auth import AuthContext, AuthState, JsonFileStore, KeyValueStore, MemoryStore, build_auth_context
from fedrita.auth.guards import DecisionKind, evaluate, route_for
from fedrita.backend import Backend, build_backend
from fedrita.config import settings
from fedrita.exceptions import AuthError
from fedrita.services import (
    AppointmentService,
    ClientService,
    CompanyService,
    DashboardService,
    EmployeeService,
    SalonService,
)

logger = logging.getLogger("fedrita.api")

# Global/Cached instances
_backend_instance: Optional[Backend] = None
_registry_instance: Optional[ContextRegistry] = None


class GuardRedirect(Exception):
    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


class GuardPending(Exception):
    """Auth state is still resolving; the page cannot be decided yet."""


def get_backend() -> Backend:
    global _backend_instance
    if _backend_instance is None:
        _backend_instance = build_backend(settings)
    return _backend_instance


def build_storage(session_id: str) -> KeyValueStore:
    if (settings.state.backend or "file").strip().lower() == "memory":
        return MemoryStore()
    return JsonFileStore(settings.paths.state_dir / f"{session_id}.json")


def get_registry() -> ContextRegistry:
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = ContextRegistry(
            factory=lambda sid: build_auth_context(get_backend(), build_storage(sid)),
            ttl_seconds=settings.security.context_ttl_seconds,
        )
    return _registry_instance


async def reset_instances() -> None:
    global _backend_instance, _registry_instance
    if _registry_instance is not None:
        _registry_instance.close_all()
    if _backend_instance is not None:
        await _backend_instance.aclose()
    _backend_instance = None
    _registry_instance = None


async def get_auth_context(request: Request) -> AuthContext:
    context = await get_registry().get(request.state.session_id)
    session = context.state.session
    if session is not None and session.is_expired() and session.refresh_token:
        try:
            await context.sessions.refresh()
        except AuthError as exc:
            # refresh() already signed the context out
            logger.info("Session refresh rejected", extra={"error": str(exc)})
    return context


async def get_auth_state(context: AuthContext = Depends(get_auth_context)) -> AuthState:
    return context.state


def require_route(path: str) -> Callable:
    """
    Dependency enforcing the guard registered for `path` in the route table.
    Resolves to the AuthState snapshot the decision was made on.
    """
    route = route_for(path)
    if route is None:
        raise ValueError(f"No route registered for {path}")

    async def guard(context: AuthContext = Depends(get_auth_context)) -> AuthState:
        state = context.state
        decision = evaluate(route.guard, state)
        if decision.kind == DecisionKind.LOADING:
            raise GuardPending()
        if decision.kind == DecisionKind.REDIRECT:
            raise GuardRedirect(decision.location)
        return state

    return guard


def get_company_service() -> CompanyService:
    return CompanyService(get_backend(), logo_bucket=settings.backend.logo_bucket)


def get_salon_service() -> SalonService:
    return SalonService(get_backend())


def get_employee_service() -> EmployeeService:
    return EmployeeService(get_backend())


def get_appointment_service() -> AppointmentService:
    return AppointmentService(get_backend())


def get_client_service() -> ClientService:
    return ClientService(get_backend())


def get_dashboard_service() -> DashboardService:
    return DashboardService(get_backend(), assistant_url=settings.app.assistant_url)

from __future__ import annotations

from typing import Dict, Iterable, Optional

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.models import Company, Identity, Role, Salon
from fedrita.exceptions import FormValidationError, PermissionDenied


def require_identity(state: AuthState, message: str = "Debes estar autenticado.") -> Identity:
    if state.identity is None:
        raise FormValidationError(message)
    return state.identity


def require_company(
    state: AuthState,
    message: str = "Debes tener una empresa registrada y estar autenticado.",
) -> tuple[Identity, Company]:
    identity = require_identity(state, message)
    if state.company is None:
        raise FormValidationError(message)
    return identity, state.company


def require_admin(state: AuthState) -> tuple[Identity, Company]:
    identity, company = require_company(state)
    if state.role != Role.ADMIN:
        raise PermissionDenied("Solo el administrador de la empresa puede hacer esto.")
    return identity, company


def require_managed_salon(state: AuthState) -> tuple[Identity, Salon]:
    identity = require_identity(state)
    salon = state.managed_salon
    if salon is None:
        raise PermissionDenied("No tienes un salón asignado.")
    return identity, salon


def data_owner_id(state: AuthState) -> str:
    """
    Identity that owns the company's records: the admin themself, or for a
    manager the owner of the managed salon.
    """
    if state.is_active_manager:
        return state.managed_salon.owner_id or ""
    return require_identity(state).id


def blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


async def names_by_id(
    backend: Backend,
    table: str,
    ids: Iterable[Optional[str]],
    access_token: Optional[str] = None,
) -> Dict[str, str]:
    wanted = sorted({i for i in ids if i})
    if not wanted:
        return {}
    rows = await backend.select(TableQuery(table).in_("id", wanted), access_token=access_token)
    return {r["id"]: r.get("name") or "" for r in rows}

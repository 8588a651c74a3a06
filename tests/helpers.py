"""Seeding helpers shared by the test modules."""

from datetime import UTC, datetime, timedelta
from typing import Optional

from fedrita.auth import AuthState
from fedrita.domain.models import Company, Identity, Profile, Salon


async def make_user(backend, email: str, password: str = "secret123") -> Identity:
    result = await backend.sign_up(email, password)
    return result.identity


async def make_company(backend, owner_id: str, name: str = "Glow", **extra) -> dict:
    return await backend.insert("companies", {"name": name, "owner_id": owner_id, **extra})


async def make_salon(
    backend,
    company_id: str,
    owner_id: str,
    name: str = "Centro",
    manager_id: Optional[str] = None,
    **extra,
) -> dict:
    row = {"company_id": company_id, "owner_id": owner_id, "name": name, "manager_id": manager_id, **extra}
    return await backend.insert("salons", row)


def in_days(days: float) -> datetime:
    return datetime.now(UTC) + timedelta(days=days)


def admin_state(identity: Identity, company_row: dict) -> AuthState:
    return AuthState(identity=identity, profile=Profile.admin(Company.model_validate(company_row)))


def manager_state(identity: Identity, salon_row: dict, company_row: Optional[dict] = None) -> AuthState:
    company = Company.model_validate(company_row) if company_row else None
    return AuthState(identity=identity, profile=Profile.manager(Salon.model_validate(salon_row), company))

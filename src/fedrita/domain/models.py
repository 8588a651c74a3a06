from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from time import time
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict


class Record(BaseModel):
    """
    Base for rows coming back from the backend tables.
    Unknown columns are ignored so schema additions do not break reads.
    """
    model_config = ConfigDict(extra="ignore")


class Identity(BaseModel):
    """
    An authenticated principal.
    needs_company_setup: True right after registration, False once a company exists,
    None when unknown (derived from the profile instead).
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    needs_company_setup: Optional[bool] = None


class Company(Record):
    id: str
    name: str
    owner_id: str
    phone: Optional[str] = None
    contact_email: Optional[str] = None
    whatsapp_url: Optional[str] = None
    logo_url: Optional[str] = None
    created_at: Optional[datetime] = None


class Salon(Record):
    id: str
    company_id: str
    owner_id: Optional[str] = None
    manager_id: Optional[str] = None
    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[str] = None
    created_at: Optional[datetime] = None


class Employee(Record):
    id: str
    salon_id: str
    owner_id: str
    name: str
    specialty: Optional[str] = None
    availability: Optional[str] = None
    created_at: Optional[datetime] = None
    salon_name: Optional[str] = None


class Appointment(Record):
    id: str
    salon_id: str
    owner_id: str
    employee_id: Optional[str] = None
    client_name: str = ""
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    service: str = ""
    appointment_time: datetime
    created_at: Optional[datetime] = None
    salon_name: Optional[str] = None
    employee_name: Optional[str] = None


class Client(Record):
    id: str
    owner_id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    first_appointment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    reservations_count: int = 0


@dataclass
class Session:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[float]
    identity: Identity

    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "identity": self.identity.model_dump(mode="json"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
            identity=Identity.model_validate(data["identity"]),
        )


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    NONE = "none"


@dataclass(frozen=True)
class AdminGrant:
    company: Company
    role: Role = field(default=Role.ADMIN, init=False)


@dataclass(frozen=True)
class ManagerGrant:
    salon: Salon
    company: Optional[Company] = None  # parent company; None only if it could not be read
    role: Role = field(default=Role.MANAGER, init=False)


@dataclass(frozen=True)
class NoGrant:
    role: Role = field(default=Role.NONE, init=False)


Grant = Union[AdminGrant, ManagerGrant, NoGrant]


@dataclass(frozen=True)
class Profile:
    """
    Resolved access level of an identity: exactly one grant.
    """
    grant: Grant = field(default_factory=NoGrant)

    @classmethod
    def none(cls) -> "Profile":
        return cls(NoGrant())

    @classmethod
    def admin(cls, company: Company) -> "Profile":
        return cls(AdminGrant(company))

    @classmethod
    def manager(cls, salon: Salon, company: Optional[Company]) -> "Profile":
        return cls(ManagerGrant(salon, company))

    @property
    def role(self) -> Role:
        return self.grant.role

    @property
    def company(self) -> Optional[Company]:
        if isinstance(self.grant, (AdminGrant, ManagerGrant)):
            return self.grant.company
        return None

    @property
    def managed_salon(self) -> Optional[Salon]:
        if isinstance(self.grant, ManagerGrant):
            return self.grant.salon
        return None

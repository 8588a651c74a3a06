from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.models import Appointment
from fedrita.services.common import require_company, require_managed_salon

RECENT_APPOINTMENTS_LIMIT = 50
UPCOMING_LIMIT = 3


class QuickAction(BaseModel):
    title: str
    description: str
    action: str
    external: bool = False


class AdminStats(BaseModel):
    company_name: str
    salons: int
    employees: int
    total_appointments: int
    upcoming_appointments: List[Appointment]
    quick_actions: List[QuickAction]


class ManagerStats(BaseModel):
    salon_name: str
    company_name: Optional[str] = None
    employees: int
    total_appointments: int
    total_clients: int
    upcoming_appointments: List[Appointment]
    quick_actions: List[QuickAction]


def admin_actions(assistant_url: str) -> List[QuickAction]:
    return [
        QuickAction(title="Agendar Cita", description="Crea una nueva reserva para un cliente", action="/crear-reserva"),
        QuickAction(title="Crear Salón", description="Configura un nuevo salón de belleza", action="/crear-salon"),
        QuickAction(title="Añadir Empleado", description="Registra un nuevo miembro del equipo", action="/crear-empleado"),
        QuickAction(
            title="Asistente Fedrita",
            description="Configura tu IA de WhatsApp",
            action=assistant_url,
            external=True,
        ),
    ]


MANAGER_ACTIONS = [
    QuickAction(title="Agendar Cita", description="Crea una nueva reserva para un cliente", action="/crear-reserva"),
    QuickAction(title="Añadir Empleado", description="Registra un nuevo miembro del equipo", action="/crear-empleado"),
    QuickAction(title="Ver Empleados", description="Gestiona el equipo del salón", action="/empleados-salon"),
    QuickAction(title="Ver Clientes", description="Administra la base de clientes", action="/clientes-salon"),
]


def upcoming(rows: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Appointment]:
    """First appointments at or after now, from rows already sorted ascending."""
    now = now or datetime.now(UTC)
    result = []
    for row in rows:
        appt = Appointment.model_validate(row)
        when = appt.appointment_time if appt.appointment_time.tzinfo else appt.appointment_time.replace(tzinfo=UTC)
        if when >= now:
            result.append(appt)
        if len(result) == UPCOMING_LIMIT:
            break
    return result


class DashboardService:
    def __init__(self, backend: Backend, assistant_url: str = "https://app.fedrita.com"):
        self.backend = backend
        self.assistant_url = assistant_url

    async def admin_stats(self, state: AuthState) -> AdminStats:
        identity, company = require_company(state)
        token = state.access_token
        salons, employees, appointments = await asyncio.gather(
            self.backend.count(
                TableQuery("salons").eq("owner_id", identity.id).eq("company_id", company.id), access_token=token
            ),
            self.backend.count(TableQuery("employees").eq("owner_id", identity.id), access_token=token),
            self.backend.select(
                TableQuery("appointments")
                .eq("owner_id", identity.id)
                .order("appointment_time")
                .limit(RECENT_APPOINTMENTS_LIMIT),
                access_token=token,
            ),
        )
        return AdminStats(
            company_name=company.name,
            salons=salons,
            employees=employees,
            total_appointments=len(appointments),
            upcoming_appointments=upcoming(appointments),
            quick_actions=admin_actions(self.assistant_url),
        )

    async def manager_stats(self, state: AuthState) -> ManagerStats:
        _, salon = require_managed_salon(state)
        token = state.access_token
        employees, appointments, clients = await asyncio.gather(
            self.backend.count(TableQuery("employees").eq("salon_id", salon.id), access_token=token),
            self.backend.select(
                TableQuery("appointments")
                .eq("salon_id", salon.id)
                .order("appointment_time")
                .limit(RECENT_APPOINTMENTS_LIMIT),
                access_token=token,
            ),
            self.backend.count(TableQuery("clients").eq("owner_id", salon.owner_id), access_token=token),
        )
        return ManagerStats(
            salon_name=salon.name,
            company_name=state.company.name if state.company else None,
            employees=employees,
            total_appointments=len(appointments),
            total_clients=clients,
            upcoming_appointments=upcoming(appointments),
            quick_actions=MANAGER_ACTIONS,
        )

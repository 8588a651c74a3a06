from __future__ import annotations

import logging
from typing import List, Optional

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.forms import NO_PREFERENCE, AppointmentForm, AppointmentUpdate
from fedrita.domain.models import Appointment, Employee
from fedrita.exceptions import DataLookupError, FormValidationError, PermissionDenied, RecordNotFound
from fedrita.services.common import blank, clean, data_owner_id, names_by_id, require_identity
from fedrita.services.employees import salon_options

logger = logging.getLogger("fedrita.services.appointments")

MISSING_FIELDS = "Por favor, rellena todos los campos obligatorios."


class AppointmentService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def _check_salon(self, state: AuthState, salon_id: str) -> None:
        options = await salon_options(self.backend, state)
        if salon_id not in {s.id for s in options}:
            raise PermissionDenied("No puedes gestionar reservas de ese salón.")

    async def employees_for_salon(self, state: AuthState, salon_id: str) -> List[Employee]:
        await self._check_salon(state, salon_id)
        rows = await self.backend.select(
            TableQuery("employees").eq("salon_id", salon_id).eq("owner_id", data_owner_id(state)).order("name"),
            access_token=state.access_token,
        )
        return [Employee.model_validate(r) for r in rows]

    async def create(self, state: AuthState, form: AppointmentForm) -> Appointment:
        """
        Book an appointment. When the client is identified by email or phone and
        no client record matches, one is created pointing at this appointment.
        """
        identity = require_identity(state, MISSING_FIELDS)
        salon_id = clean(form.salon_id) or (state.managed_salon.id if state.is_active_manager else None)
        if salon_id is None or form.appointment_time is None or blank(form.service):
            raise FormValidationError(MISSING_FIELDS)
        await self._check_salon(state, salon_id)

        employee_id = clean(form.employee_id)
        if employee_id == NO_PREFERENCE:
            employee_id = None
        if employee_id is not None:
            staff = await self.employees_for_salon(state, salon_id)
            if employee_id not in {e.id for e in staff}:
                raise FormValidationError("El empleado seleccionado no pertenece al salón.")

        owner_id = data_owner_id(state)
        email = clean(form.client_email)
        phone = clean(form.client_phone)

        existing = None
        if email or phone:
            rows = await self.backend.select(
                TableQuery("clients").eq("owner_id", owner_id).eq_any(email=email, phone=phone).limit(1),
                access_token=state.access_token,
            )
            existing = rows[0] if rows else None

        created = await self.backend.insert(
            "appointments",
            {
                "salon_id": salon_id,
                "employee_id": employee_id,
                "owner_id": owner_id,
                "client_name": form.client_name.strip(),
                "client_email": email,
                "client_phone": phone,
                "service": form.service.strip(),
                "appointment_time": form.appointment_time,
            },
            access_token=state.access_token,
        )
        appointment = Appointment.model_validate(created)

        if existing is None and (email or phone):
            try:
                await self.backend.insert(
                    "clients",
                    {
                        "owner_id": owner_id,
                        "name": form.client_name.strip(),
                        "email": email,
                        "phone": phone,
                        "first_appointment_id": appointment.id,
                    },
                    access_token=state.access_token,
                )
            except DataLookupError as exc:
                # the booking itself stands; the client list catches up on the next booking
                logger.warning(
                    "Client record not created",
                    extra={"appointment_id": appointment.id, "error": str(exc)},
                )

        logger.info(
            "Appointment created",
            extra={"appointment_id": appointment.id, "salon_id": salon_id, "identity_id": identity.id},
        )
        return appointment

    def _scope(self, state: AuthState) -> TableQuery:
        if state.is_active_manager:
            return TableQuery("appointments").eq("salon_id", state.managed_salon.id)
        return TableQuery("appointments").eq("owner_id", require_identity(state).id)

    async def _with_names(self, state: AuthState, rows: list[dict]) -> List[Appointment]:
        salon_names = await names_by_id(
            self.backend, "salons", (r.get("salon_id") for r in rows), access_token=state.access_token
        )
        employee_names = await names_by_id(
            self.backend, "employees", (r.get("employee_id") for r in rows), access_token=state.access_token
        )
        return [
            Appointment.model_validate(
                {
                    **r,
                    "salon_name": salon_names.get(r.get("salon_id")),
                    "employee_name": employee_names.get(r.get("employee_id")),
                }
            )
            for r in rows
        ]

    async def list(self, state: AuthState, *, limit: Optional[int] = None, ascending: bool = False) -> List[Appointment]:
        query = self._scope(state).order("appointment_time", descending=not ascending)
        if limit is not None:
            query = query.limit(limit)
        rows = await self.backend.select(query, access_token=state.access_token)
        return await self._with_names(state, rows)

    async def get(self, state: AuthState, appointment_id: str) -> Appointment:
        rows = await self.backend.select(self._scope(state).eq("id", appointment_id), access_token=state.access_token)
        if not rows:
            raise RecordNotFound("Cita no encontrada.")
        return (await self._with_names(state, rows))[0]

    async def update(self, state: AuthState, appointment_id: str, form: AppointmentUpdate) -> Appointment:
        if (
            blank(form.client_name)
            or blank(form.client_email)
            or blank(form.client_phone)
            or blank(form.service)
            or form.appointment_time is None
        ):
            raise FormValidationError("Todos los campos son obligatorios.")
        rows = await self.backend.update(
            self._scope(state).eq("id", appointment_id),
            {
                "client_name": form.client_name.strip(),
                "client_email": form.client_email.strip(),
                "client_phone": form.client_phone.strip(),
                "service": form.service.strip(),
                "appointment_time": form.appointment_time,
            },
            access_token=state.access_token,
        )
        if not rows:
            raise RecordNotFound("Cita no encontrada.")
        return (await self._with_names(state, rows))[0]

    async def delete(self, state: AuthState, appointment_id: str) -> None:
        deleted = await self.backend.delete(
            self._scope(state).eq("id", appointment_id), access_token=state.access_token
        )
        if not deleted:
            raise RecordNotFound("Cita no encontrada.")

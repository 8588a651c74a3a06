from __future__ import annotations

import logging
from typing import List, Tuple

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.forms import EmployeeForm
from fedrita.domain.models import Employee, Role, Salon
from fedrita.exceptions import FormValidationError, PermissionDenied, RecordNotFound
from fedrita.services.common import blank, clean, data_owner_id, names_by_id, require_identity

logger = logging.getLogger("fedrita.services.employees")


async def salon_options(backend: Backend, state: AuthState) -> List[Salon]:
    """
    Salons the caller may attach employees or appointments to:
    an admin gets the company's salons, a manager only the managed one.
    """
    identity = require_identity(state)
    if state.is_active_manager:
        return [state.managed_salon]
    if state.role == Role.ADMIN and state.company is not None:
        rows = await backend.select(
            TableQuery("salons").eq("company_id", state.company.id).eq("owner_id", identity.id).order("name"),
            access_token=state.access_token,
        )
        return [Salon.model_validate(r) for r in rows]
    raise FormValidationError("Debes tener una empresa registrada y estar autenticado.")


class EmployeeService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def salon_options(self, state: AuthState) -> List[Salon]:
        return await salon_options(self.backend, state)

    async def create(self, state: AuthState, form: EmployeeForm) -> Tuple[Employee, bool]:
        """
        Returns the new employee and whether it was designated salon manager.
        Designating a manager requires an existing identity with that email.
        """
        identity = require_identity(state, "Debes estar autenticado y seleccionar un salón.")
        salon_id = clean(form.salon_id)
        if salon_id is None and state.is_active_manager:
            salon_id = state.managed_salon.id
        if salon_id is None:
            raise FormValidationError("Debes estar autenticado y seleccionar un salón.")
        if form.is_manager and blank(form.employee_email):
            raise FormValidationError("Para designar un manager, necesitas proporcionar su email.")

        options = await self.salon_options(state)
        if salon_id not in {s.id for s in options}:
            raise PermissionDenied("No puedes añadir empleados a ese salón.")

        manager_id = None
        if form.is_manager:
            found = await self.backend.find_user_by_email(form.employee_email.strip())
            if found is None:
                raise RecordNotFound(
                    "No se encontró un usuario con ese email. El empleado debe registrarse primero en Fedrita."
                )
            manager_id = found.id

        row = {
            "name": form.name.strip(),
            "specialty": clean(form.specialty),
            "availability": clean(form.availability),
            "salon_id": salon_id,
            "owner_id": identity.id if state.role == Role.ADMIN else data_owner_id(state),
        }
        created = await self.backend.insert("employees", row, access_token=state.access_token)

        if manager_id is not None:
            await self.backend.update(
                TableQuery("salons").eq("id", salon_id),
                {"manager_id": manager_id},
                access_token=state.access_token,
            )
            logger.info("Salon manager designated", extra={"salon_id": salon_id, "manager_id": manager_id})

        return Employee.model_validate(created), manager_id is not None

    def _scope(self, state: AuthState) -> TableQuery:
        if state.is_active_manager:
            return TableQuery("employees").eq("salon_id", state.managed_salon.id)
        return TableQuery("employees").eq("owner_id", require_identity(state).id)

    async def list(self, state: AuthState) -> List[Employee]:
        rows = await self.backend.select(
            self._scope(state).order("created_at", descending=True), access_token=state.access_token
        )
        salon_names = await names_by_id(
            self.backend, "salons", (r.get("salon_id") for r in rows), access_token=state.access_token
        )
        return [Employee.model_validate({**r, "salon_name": salon_names.get(r.get("salon_id"))}) for r in rows]

    async def delete(self, state: AuthState, employee_id: str) -> None:
        deleted = await self.backend.delete(self._scope(state).eq("id", employee_id), access_token=state.access_token)
        if not deleted:
            raise RecordNotFound("Empleado no encontrado.")

from typing import Optional

from fastapi import APIRouter, Depends, Query

from fedrita.api.deps import get_appointment_service, get_client_service, get_employee_service, require_route
from fedrita.api.views import dump_all, notice, page
from fedrita.auth import AuthState
from fedrita.domain.forms import NO_PREFERENCE, AppointmentForm, AppointmentUpdate
from fedrita.services import AppointmentService, ClientService, EmployeeService

router = APIRouter(tags=["appointments"])


@router.get("/crear-reserva")
async def create_appointment_page(
    salon_id: Optional[str] = Query(None),
    state: AuthState = Depends(require_route("/crear-reserva")),
    employees_svc: EmployeeService = Depends(get_employee_service),
    svc: AppointmentService = Depends(get_appointment_service),
):
    salons = await employees_svc.salon_options(state)
    employees = await svc.employees_for_salon(state, salon_id) if salon_id else []
    return page(
        "create_appointment",
        fields=list(AppointmentForm.model_fields),
        salons=[{"id": s.id, "name": s.name} for s in salons],
        employees=[{"id": e.id, "name": e.name} for e in employees],
        no_preference=NO_PREFERENCE,
    )


@router.get("/crear-reserva/cliente")
async def lookup_client(
    email: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    state: AuthState = Depends(require_route("/crear-reserva")),
    svc: ClientService = Depends(get_client_service),
):
    client = await svc.lookup(state, email=email, phone=phone)
    if client is None:
        return page("create_appointment", client=None)
    return page(
        "create_appointment",
        toast=notice("Cliente encontrado", "Datos del cliente autocompletados."),
        client={"name": client.name, "email": client.email, "phone": client.phone},
    )


@router.post("/crear-reserva")
async def create_appointment(
    form: AppointmentForm,
    state: AuthState = Depends(require_route("/crear-reserva")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    appointment = await svc.create(state, form)
    return page(
        "create_appointment",
        toast=notice("¡Reserva creada!", f"Cita para {appointment.client_name} agendada."),
        next_path="/citas-salon" if state.is_active_manager else "/mis-citas",
        appointment=appointment.model_dump(mode="json"),
    )


@router.get("/mis-citas")
async def my_appointments(
    state: AuthState = Depends(require_route("/mis-citas")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    return page("my_appointments", appointments=dump_all(await svc.list(state)))


@router.get("/mis-citas/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    state: AuthState = Depends(require_route("/mis-citas")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    appointment = await svc.get(state, appointment_id)
    return page("edit_appointment", appointment=appointment.model_dump(mode="json"))


@router.patch("/mis-citas/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    form: AppointmentUpdate,
    state: AuthState = Depends(require_route("/mis-citas")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    appointment = await svc.update(state, appointment_id, form)
    return page(
        "edit_appointment",
        toast=notice("Cita actualizada", "Cita actualizada exitosamente."),
        next_path="/mis-citas",
        appointment=appointment.model_dump(mode="json"),
    )


@router.delete("/mis-citas/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    state: AuthState = Depends(require_route("/mis-citas")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    await svc.delete(state, appointment_id)
    return page(
        "my_appointments",
        toast=notice("Cita eliminada", "La cita ha sido eliminada exitosamente."),
        deleted=appointment_id,
    )


@router.get("/citas-salon")
async def salon_appointments(
    state: AuthState = Depends(require_route("/citas-salon")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    return page(
        "salon_appointments",
        salon=state.managed_salon.model_dump(mode="json"),
        appointments=dump_all(await svc.list(state)),
    )


@router.delete("/citas-salon/{appointment_id}")
async def delete_salon_appointment(
    appointment_id: str,
    state: AuthState = Depends(require_route("/citas-salon")),
    svc: AppointmentService = Depends(get_appointment_service),
):
    await svc.delete(state, appointment_id)
    return page(
        "salon_appointments",
        toast=notice("Cita eliminada", "La cita ha sido eliminada exitosamente."),
        deleted=appointment_id,
    )

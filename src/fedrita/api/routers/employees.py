from fastapi import APIRouter, Depends

from fedrita.api.deps import get_employee_service, require_route
from fedrita.api.views import dump_all, notice, page
from fedrita.auth import AuthState
from fedrita.domain.forms import EmployeeForm
from fedrita.services import EmployeeService

router = APIRouter(tags=["employees"])


@router.get("/crear-empleado")
async def create_employee_page(
    state: AuthState = Depends(require_route("/crear-empleado")),
    svc: EmployeeService = Depends(get_employee_service),
):
    salons = await svc.salon_options(state)
    return page(
        "create_employee",
        fields=list(EmployeeForm.model_fields),
        role=state.role.value,
        salons=[{"id": s.id, "name": s.name} for s in salons],
    )


@router.post("/crear-empleado")
async def create_employee(
    form: EmployeeForm,
    state: AuthState = Depends(require_route("/crear-empleado")),
    svc: EmployeeService = Depends(get_employee_service),
):
    employee, is_manager = await svc.create(state, form)
    if is_manager:
        toast = notice("¡Empleado y Manager creados!", f"{employee.name} ha sido añadido como manager del salón.")
    else:
        toast = notice("¡Empleado creado exitosamente!", f"{employee.name} ha sido añadido al salón.")
    return page(
        "create_employee",
        toast=toast,
        next_path="/empleados-salon" if state.is_active_manager else "/mis-empleados",
        employee=employee.model_dump(mode="json"),
        manager_designated=is_manager,
    )


@router.get("/mis-empleados")
async def my_employees(
    state: AuthState = Depends(require_route("/mis-empleados")),
    svc: EmployeeService = Depends(get_employee_service),
):
    return page("my_employees", employees=dump_all(await svc.list(state)))


@router.delete("/mis-empleados/{employee_id}")
async def delete_employee(
    employee_id: str,
    state: AuthState = Depends(require_route("/mis-empleados")),
    svc: EmployeeService = Depends(get_employee_service),
):
    await svc.delete(state, employee_id)
    return page(
        "my_employees",
        toast=notice("Empleado eliminado", "El empleado ha sido eliminado exitosamente."),
        deleted=employee_id,
    )


@router.get("/empleados-salon")
async def salon_employees(
    state: AuthState = Depends(require_route("/empleados-salon")),
    svc: EmployeeService = Depends(get_employee_service),
):
    return page(
        "salon_employees",
        salon=state.managed_salon.model_dump(mode="json"),
        employees=dump_all(await svc.list(state)),
    )


@router.delete("/empleados-salon/{employee_id}")
async def delete_salon_employee(
    employee_id: str,
    state: AuthState = Depends(require_route("/empleados-salon")),
    svc: EmployeeService = Depends(get_employee_service),
):
    await svc.delete(state, employee_id)
    return page(
        "salon_employees",
        toast=notice("Empleado eliminado", "El empleado ha sido eliminado exitosamente."),
        deleted=employee_id,
    )

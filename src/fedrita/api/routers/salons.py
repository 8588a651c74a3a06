from fastapi import APIRouter, Depends

from fedrita.api.deps import get_salon_service, require_route
from fedrita.api.views import dump_all, notice, page
from fedrita.auth import AuthState
from fedrita.domain.forms import SalonForm
from fedrita.services import SalonService
from fedrita.services.common import require_company

router = APIRouter(tags=["salons"])


@router.get("/crear-salon")
def create_salon_page(state: AuthState = Depends(require_route("/crear-salon"))):
    _, company = require_company(state)
    return page("create_salon", fields=list(SalonForm.model_fields), company=company.model_dump(mode="json"))


@router.post("/crear-salon")
async def create_salon(
    form: SalonForm,
    state: AuthState = Depends(require_route("/crear-salon")),
    svc: SalonService = Depends(get_salon_service),
):
    salon = await svc.create(state, form)
    return page(
        "create_salon",
        toast=notice("¡Salón creado exitosamente!", f"{salon.name} ha sido añadido a tu empresa."),
        next_path="/mis-salones",
        salon=salon.model_dump(mode="json"),
    )


@router.get("/mis-salones")
async def my_salons(
    state: AuthState = Depends(require_route("/mis-salones")),
    svc: SalonService = Depends(get_salon_service),
):
    salons = await svc.list_for_company(state)
    return page("my_salons", salons=dump_all(salons))


@router.delete("/mis-salones/{salon_id}")
async def delete_salon(
    salon_id: str,
    state: AuthState = Depends(require_route("/mis-salones")),
    svc: SalonService = Depends(get_salon_service),
):
    await svc.delete(state, salon_id)
    return page("my_salons", toast=notice("Salón eliminado", "El salón ha sido eliminado exitosamente."), deleted=salon_id)

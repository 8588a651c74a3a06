from fastapi import APIRouter, Depends

from fedrita.api.deps import get_client_service, require_route
from fedrita.api.views import dump_all, notice, page
from fedrita.auth import AuthState
from fedrita.services import ClientService

router = APIRouter(tags=["clients"])

_DELETED = notice("Cliente eliminado", "El cliente ha sido eliminado exitosamente.")


@router.get("/mis-clientes")
async def my_clients(
    state: AuthState = Depends(require_route("/mis-clientes")),
    svc: ClientService = Depends(get_client_service),
):
    return page("my_clients", clients=dump_all(await svc.list(state)))


@router.delete("/mis-clientes/{client_id}")
async def delete_client(
    client_id: str,
    state: AuthState = Depends(require_route("/mis-clientes")),
    svc: ClientService = Depends(get_client_service),
):
    await svc.delete(state, client_id)
    return page("my_clients", toast=_DELETED, deleted=client_id)


@router.get("/clientes-salon")
async def salon_clients(
    state: AuthState = Depends(require_route("/clientes-salon")),
    svc: ClientService = Depends(get_client_service),
):
    return page(
        "salon_clients",
        salon=state.managed_salon.model_dump(mode="json"),
        clients=dump_all(await svc.list(state)),
    )


@router.delete("/clientes-salon/{client_id}")
async def delete_salon_client(
    client_id: str,
    state: AuthState = Depends(require_route("/clientes-salon")),
    svc: ClientService = Depends(get_client_service),
):
    await svc.delete(state, client_id)
    return page("salon_clients", toast=_DELETED, deleted=client_id)

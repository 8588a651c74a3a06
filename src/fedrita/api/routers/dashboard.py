from fastapi import APIRouter, Depends

from fedrita.api.deps import get_dashboard_service, require_route
from fedrita.api.views import page
from fedrita.auth import AuthState
from fedrita.auth.guards import DASHBOARD_PATH, MANAGER_DASHBOARD_PATH
from fedrita.config import settings
from fedrita.services import DashboardService

router = APIRouter(tags=["dashboard"])


@router.get(DASHBOARD_PATH)
async def dashboard(
    state: AuthState = Depends(require_route(DASHBOARD_PATH)),
    svc: DashboardService = Depends(get_dashboard_service),
):
    stats = await svc.admin_stats(state)
    return page("dashboard", role=state.role.value, stats=stats.model_dump(mode="json"))


@router.get(MANAGER_DASHBOARD_PATH)
async def dashboard_manager(
    state: AuthState = Depends(require_route(MANAGER_DASHBOARD_PATH)),
    svc: DashboardService = Depends(get_dashboard_service),
):
    stats = await svc.manager_stats(state)
    return page("dashboard_manager", role=state.role.value, stats=stats.model_dump(mode="json"))


@router.get("/conectar-whatsapp")
def connect_whatsapp(state: AuthState = Depends(require_route("/conectar-whatsapp"))):
    company = state.company
    return page(
        "connect_whatsapp",
        assistant_url=settings.app.assistant_url,
        whatsapp_url=company.whatsapp_url if company else None,
    )

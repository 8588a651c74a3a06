from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from fedrita.api.deps import get_auth_context, get_company_service, require_route
from fedrita.api.views import notice, page
from fedrita.auth import AuthContext, AuthState
from fedrita.auth.guards import COMPANY_SETUP_PATH, DASHBOARD_PATH
from fedrita.domain.forms import CompanyForm
from fedrita.services import CompanyService, LogoUpload

router = APIRouter(tags=["company"])


@router.get(COMPANY_SETUP_PATH)
def company_registration_page(state: AuthState = Depends(require_route(COMPANY_SETUP_PATH))):
    return page(
        "company_registration",
        fields=list(CompanyForm.model_fields) + ["logo"],
        defaults={"contact_email": state.identity.email},
    )


@router.post(COMPANY_SETUP_PATH)
async def register_company(
    name: str = Form(...),
    phone: Optional[str] = Form(None),
    contact_email: Optional[str] = Form(None),
    whatsapp_url: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    state: AuthState = Depends(require_route(COMPANY_SETUP_PATH)),
    context: AuthContext = Depends(get_auth_context),
    svc: CompanyService = Depends(get_company_service),
):
    form = CompanyForm(name=name, phone=phone, contact_email=contact_email, whatsapp_url=whatsapp_url)
    upload = None
    if logo is not None and logo.filename:
        upload = LogoUpload(filename=logo.filename, content=await logo.read(), content_type=logo.content_type)

    company = await svc.register_company(state, form, upload)
    await context.refresh_profile(state.identity.id)
    return page(
        "company_registration",
        toast=notice("¡Empresa registrada exitosamente!", "Tu salón ha sido configurado correctamente."),
        next_path=DASHBOARD_PATH,
        company=company.model_dump(mode="json"),
    )

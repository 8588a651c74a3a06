import logging

from fastapi import APIRouter, Depends

from fedrita.api.deps import get_auth_context, require_route
from fedrita.api.views import notice, page
from fedrita.auth import AuthContext, AuthState
from fedrita.auth.guards import COMPANY_SETUP_PATH, DASHBOARD_PATH, HOME_PATH
from fedrita.domain.forms import LoginForm, RegisterForm
from fedrita.exceptions import FormValidationError

logger = logging.getLogger("fedrita.api.auth")
router = APIRouter(tags=["auth"])


@router.get("/login")
def login_page():
    return page("login", fields=list(LoginForm.model_fields))


@router.post("/login")
async def login(form: LoginForm, context: AuthContext = Depends(get_auth_context)):
    identity = await context.login(form.email, form.password)
    return page(
        "login",
        toast=notice("¡Bienvenido de vuelta!", "Has iniciado sesión correctamente."),
        next_path=DASHBOARD_PATH,
        identity=identity.model_dump(mode="json"),
    )


@router.get("/register")
def register_page():
    return page("register", fields=list(RegisterForm.model_fields))


@router.post("/register")
async def register(form: RegisterForm, context: AuthContext = Depends(get_auth_context)):
    if form.password != form.confirm_password:
        raise FormValidationError("Las contraseñas no coinciden")
    if not form.accept_terms:
        raise FormValidationError("Debes aceptar los términos y condiciones")

    identity = await context.register(form.email, form.password)
    return page(
        "register",
        toast=notice("¡Cuenta creada exitosamente!", "Ahora configura los datos de tu empresa."),
        next_path=COMPANY_SETUP_PATH,
        identity=identity.model_dump(mode="json"),
        confirmed=context.state.session is not None,
    )


@router.post("/logout")
async def logout(context: AuthContext = Depends(get_auth_context)):
    await context.logout()
    return page("logout", next_path=HOME_PATH)


@router.get("/me")
def me(state: AuthState = Depends(require_route("/me"))):
    return page("account", **state.to_dict())

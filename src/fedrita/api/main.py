import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from fedrita.config import settings
from fedrita.exceptions import (
    AuthError,
    DataLookupError,
    DuplicateRegistration,
    FedritaError,
    FormValidationError,
    InvalidCredentials,
    PermissionDenied,
    RecordNotFound,
)
from fedrita.logging_config import configure_logging
from fedrita.api import deps
from fedrita.api.deps import GuardPending, GuardRedirect
from fedrita.api.middleware import add_request_id, attach_browser_session, enforce_body_size, log_requests
from fedrita.auth.guards import HOME_PATH

# Routers
from fedrita.api.routers import appointments, auth, clients, company, dashboard, employees, salons, system

configure_logging(settings.logging)
logger = logging.getLogger("fedrita.api")

# most specific class first; the first isinstance match wins
_ERROR_STATUS = (
    (InvalidCredentials, 401, "invalid_credentials"),
    (DuplicateRegistration, 409, "duplicate_registration"),
    (AuthError, 401, "auth_error"),
    (FormValidationError, 422, "validation_error"),
    (PermissionDenied, 403, "permission_denied"),
    (RecordNotFound, 404, "not_found"),
    (DataLookupError, 502, "data_lookup_failed"),
)


def _error_payload(request: Request, error: str, detail) -> dict:
    payload = {"error": error, "detail": detail}
    rid = getattr(request.state, "request_id", None)
    if rid:
        payload["request_id"] = rid
    return payload


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await deps.reset_instances()


def create_app(data_dir: Optional[Path] = None) -> FastAPI:
    """
    Factory to build the FastAPI application.
    data_dir re-roots the database, bucket and state directories (tests use a tmp dir).
    """
    if data_dir:
        settings.use_data_dir(data_dir)
    # Force re-init of backend and auth contexts for the new paths
    deps._backend_instance = None
    deps._registry_instance = None

    app = FastAPI(title="Fedrita API", version=settings.app.version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Custom Middleware (last registered runs first)
    app.middleware("http")(attach_browser_session)
    app.middleware("http")(enforce_body_size)
    if settings.logging.log_requests:
        app.middleware("http")(log_requests)
    app.middleware("http")(add_request_id)

    app.include_router(system.router)
    app.include_router(auth.router)
    app.include_router(company.router)
    app.include_router(dashboard.router)
    app.include_router(salons.router)
    app.include_router(employees.router)
    app.include_router(appointments.router)
    app.include_router(clients.router)

    # Unknown pages go back to the home page; registered last so real routes win.
    @app.get("/{full_path:path}", include_in_schema=False)
    async def unmatched(full_path: str):
        return RedirectResponse(url=HOME_PATH, status_code=307)

    @app.exception_handler(GuardRedirect)
    async def guard_redirect_handler(request: Request, exc: GuardRedirect):
        status = 307 if request.method in ("GET", "HEAD") else 303
        return RedirectResponse(url=exc.location, status_code=status)

    @app.exception_handler(GuardPending)
    async def guard_pending_handler(request: Request, exc: GuardPending):
        return JSONResponse(status_code=202, content={"page": "loading", "loading": True})

    @app.exception_handler(FedritaError)
    async def fedrita_exception_handler(request: Request, exc: FedritaError):
        for exc_type, status, error in _ERROR_STATUS:
            if isinstance(exc, exc_type):
                if status >= 500:
                    logger.warning(
                        "Backend failure",
                        extra={"path": request.url.path, "request_id": getattr(request.state, "request_id", None)},
                    )
                return JSONResponse(status_code=status, content=_error_payload(request, error, str(exc)))
        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled application error", extra={"path": str(request.url), "request_id": rid})
        return JSONResponse(
            status_code=500, content=_error_payload(request, "internal_error", "Unexpected server error")
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc):
        detail = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        return JSONResponse(status_code=422, content=_error_payload(request, "validation_error", detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", extra={"path": str(request.url), "request_id": rid})
        return JSONResponse(
            status_code=500, content=_error_payload(request, "internal_error", "Unexpected server error")
        )

    return app


# Module-level app for uvicorn entrypoint
app = create_app()

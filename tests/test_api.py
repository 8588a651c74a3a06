import logging
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from fedrita.api import deps
from fedrita.api.main import create_app
from fedrita.api.middleware import enforce_body_size
from fedrita.config import settings
from fedrita.exceptions import DataLookupError

from helpers import in_days


class Browser:
    """
    One browser against the shared app: its own session id, sent via header.
    The cookie jar is cleared per request so browsers never share a cookie.
    """

    def __init__(self, client):
        self.client = client
        self.sid = uuid4().hex

    def request(self, method, url, **kwargs):
        self.client.cookies.clear()
        headers = {"X-Fedrita-Session": self.sid, **kwargs.pop("headers", {})}
        return self.client.request(method, url, headers=headers, **kwargs)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def patch(self, url, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def delete(self, url, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def register(self, email, password="secret123"):
        resp = self.post(
            "/register",
            json={"email": email, "password": password, "confirm_password": password, "accept_terms": True},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    def login(self, email, password="secret123"):
        resp = self.post("/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()


def _admin_with_company(client, email="admin@example.com"):
    browser = Browser(client)
    browser.register(email)
    resp = browser.post("/registro-empresa", data={"name": "Glow"})
    assert resp.status_code == 200, resp.text
    return browser


def test_health_and_home(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["x-request-id"]

    home = api_client.get("/").json()
    assert home["page"] == "home"
    assert home["content"]["hero"]["title"].startswith("Fedrita")


def test_browser_session_cookie_issued(api_client):
    resp = api_client.get("/health")
    assert len(resp.cookies.get("fedrita_session")) == 32


def test_unknown_page_goes_home(api_client):
    resp = api_client.get("/no-existe")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/"


def test_anonymous_visitors_are_sent_to_login(api_client):
    browser = Browser(api_client)
    for path in ("/dashboard", "/dashboard-manager", "/mis-citas", "/registro-empresa", "/me"):
        resp = browser.get(path)
        assert resp.status_code == 307, path
        assert resp.headers["location"] == "/login"

    resp = browser.post("/crear-salon", json={"name": "Centro"})
    assert resp.status_code == 303
    assert resp.headers["location"] == "/login"


def test_registration_flow(api_client):
    browser = Browser(api_client)
    body = browser.register("new@example.com")
    assert body["next"] == "/registro-empresa"
    assert body["notice"]["title"] == "¡Cuenta creada exitosamente!"
    assert body["identity"]["needs_company_setup"] is True

    resp = browser.get("/dashboard")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/registro-empresa"

    setup = browser.get("/registro-empresa").json()
    assert setup["defaults"]["contact_email"] == "new@example.com"

    resp = browser.post(
        "/registro-empresa",
        data={"name": "Glow", "phone": "600111222"},
        files={"logo": ("logo.png", b"\x89PNG", "image/png")},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["next"] == "/dashboard"
    assert body["company"]["contact_email"] == "new@example.com"
    assert body["company"]["logo_url"].endswith("-logo.png")

    dashboard = browser.get("/dashboard")
    assert dashboard.status_code == 200
    assert dashboard.json()["stats"]["company_name"] == "Glow"

    resp = browser.get("/registro-empresa")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/dashboard"

    me = browser.get("/me").json()
    assert me["role"] == "admin"
    assert me["needs_setup"] is False


def test_register_form_errors(api_client):
    browser = Browser(api_client)
    resp = browser.post(
        "/register",
        json={"email": "a@example.com", "password": "secret123", "confirm_password": "other123", "accept_terms": True},
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Las contraseñas no coinciden"

    resp = browser.post(
        "/register",
        json={"email": "a@example.com", "password": "secret123", "confirm_password": "secret123"},
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Debes aceptar los términos y condiciones"

    browser.register("a@example.com")
    resp = Browser(api_client).post(
        "/register",
        json={"email": "a@example.com", "password": "secret123", "confirm_password": "secret123", "accept_terms": True},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "duplicate_registration"


def test_login_logout(api_client):
    _admin_with_company(api_client)
    browser = Browser(api_client)

    resp = browser.post("/login", json={"email": "admin@example.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_credentials"
    assert resp.json()["request_id"]

    body = browser.login("admin@example.com")
    assert body["next"] == "/dashboard"
    assert browser.get("/dashboard").status_code == 200
    assert browser.get("/dashboard-manager").headers["location"] == "/dashboard"

    assert browser.post("/logout").json()["next"] == "/"
    resp = browser.get("/dashboard")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/login"


def test_session_survives_new_context_with_file_state(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "paths", settings.paths.model_copy())
    monkeypatch.setattr(settings, "state", settings.state.model_copy(update={"backend": "file"}))
    with TestClient(create_app(data_dir=tmp_path), follow_redirects=False) as client:
        browser = _admin_with_company(client)
        sid = browser.sid
    assert (tmp_path / "state" / f"{sid}.json").exists()

    # a fresh app restores the browser's session from its state file
    with TestClient(create_app(data_dir=tmp_path), follow_redirects=False) as client:
        browser = Browser(client)
        browser.sid = sid
        assert browser.get("/dashboard").status_code == 200


class UnreachableTables:
    async def select(self, query, access_token=None):
        raise DataLookupError("connection refused")


def test_company_pages_after_failed_profile_lookup(api_client):
    browser = Browser(api_client)
    identity_id = browser.register("new@example.com")["identity"]["id"]
    assert browser.post("/registro-empresa", data={"name": "Glow"}).status_code == 200

    # setup is done but the next lookup fails, leaving no company resolved
    context = deps.get_registry().peek(browser.sid)
    context.resolver.backend = UnreachableTables()
    api_client.portal.call(context.refresh_profile, identity_id)
    assert context.state.needs_setup is False
    assert context.state.company is None

    for path in ("/crear-salon", "/dashboard", "/mis-salones"):
        resp = browser.get(path)
        assert resp.status_code == 422, path
        assert resp.json()["error"] == "validation_error"

def test_admin_manages_salons_employees_and_bookings(api_client):
    admin = _admin_with_company(api_client)

    resp = admin.post("/crear-salon", json={"name": "Centro", "address": "Calle Mayor 1"})
    assert resp.status_code == 200, resp.text
    salon_id = resp.json()["salon"]["id"]
    assert resp.json()["next"] == "/mis-salones"
    assert [s["name"] for s in admin.get("/mis-salones").json()["salons"]] == ["Centro"]

    resp = admin.post("/crear-empleado", json={"salon_id": salon_id, "name": "Ana"})
    assert resp.status_code == 200, resp.text
    employee_id = resp.json()["employee"]["id"]
    assert resp.json()["manager_designated"] is False

    page = admin.get("/crear-reserva", params={"salon_id": salon_id}).json()
    assert page["salons"] == [{"id": salon_id, "name": "Centro"}]
    assert page["employees"] == [{"id": employee_id, "name": "Ana"}]

    when = in_days(2).replace(microsecond=0).isoformat()
    resp = admin.post(
        "/crear-reserva",
        json={
            "salon_id": salon_id,
            "employee_id": employee_id,
            "client_name": "Carla",
            "client_email": "carla@example.com",
            "service": "Corte",
            "appointment_time": when,
        },
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["next"] == "/mis-citas"
    appointment_id = resp.json()["appointment"]["id"]

    found = admin.get("/crear-reserva/cliente", params={"email": "carla@example.com"}).json()
    assert found["client"]["name"] == "Carla"
    assert admin.get("/crear-reserva/cliente", params={"phone": "000"}).json()["client"] is None

    listed = admin.get("/mis-citas").json()["appointments"]
    assert [(a["employee_name"], a["salon_name"]) for a in listed] == [("Ana", "Centro")]

    resp = admin.patch(
        f"/mis-citas/{appointment_id}",
        json={
            "client_name": "Carla",
            "client_email": "carla@example.com",
            "client_phone": "600",
            "service": "Mechas",
            "appointment_time": when,
        },
    )
    assert resp.status_code == 200, resp.text
    assert admin.get(f"/mis-citas/{appointment_id}").json()["appointment"]["service"] == "Mechas"

    clients = admin.get("/mis-clientes").json()["clients"]
    assert [(c["name"], c["reservations_count"]) for c in clients] == [("Carla", 1)]

    assert admin.delete(f"/mis-citas/{appointment_id}").status_code == 200
    resp = admin.delete(f"/mis-citas/{appointment_id}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"

    assert admin.delete(f"/mis-clientes/{clients[0]['id']}").status_code == 200
    assert admin.delete(f"/mis-empleados/{employee_id}").status_code == 200
    assert admin.delete(f"/mis-salones/{salon_id}").status_code == 200
    assert admin.get("/mis-salones").json()["salons"] == []


def test_manager_flow(api_client):
    manager = Browser(api_client)
    manager.register("manager@example.com")

    admin = _admin_with_company(api_client)
    salon_id = admin.post("/crear-salon", json={"name": "Centro"}).json()["salon"]["id"]
    resp = admin.post(
        "/crear-empleado",
        json={"salon_id": salon_id, "name": "Marta", "is_manager": True, "employee_email": "manager@example.com"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["manager_designated"] is True
    assert resp.json()["notice"]["title"] == "¡Empleado y Manager creados!"

    # the designation shows up on the next sign-in
    manager.post("/logout")
    manager.login("manager@example.com")

    resp = manager.get("/dashboard")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/dashboard-manager"
    stats = manager.get("/dashboard-manager").json()["stats"]
    assert stats["salon_name"] == "Centro"
    assert stats["company_name"] == "Glow"

    form = manager.get("/crear-empleado").json()
    assert form["salons"] == [{"id": salon_id, "name": "Centro"}]

    resp = manager.post(
        "/crear-reserva",
        json={"client_name": "Eva", "client_phone": "600", "service": "Tinte", "appointment_time": in_days(1).isoformat()},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["next"] == "/citas-salon"

    assert len(manager.get("/citas-salon").json()["appointments"]) == 1
    assert [c["name"] for c in manager.get("/clientes-salon").json()["clients"]] == ["Eva"]
    assert [e["name"] for e in manager.get("/empleados-salon").json()["employees"]] == ["Marta"]

    # the company owner sees the manager's booking too
    assert len(admin.get("/mis-citas").json()["appointments"]) == 1
    assert admin.get("/citas-salon").headers["location"] == "/dashboard"


def test_validation_errors_use_error_envelope(api_client):
    admin = _admin_with_company(api_client)
    resp = admin.post("/crear-salon", json={"address": "sin nombre"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "validation_error"
    assert body["detail"][0]["loc"][-1] == "name"

    resp = admin.post("/crear-reserva", json={"client_name": "Eva"})
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Por favor, rellena todos los campos obligatorios."


@pytest.mark.asyncio
async def test_malformed_content_length_is_logged_and_passed_on(caplog):
    request = Request(
        {"type": "http", "method": "POST", "path": "/login", "query_string": b"", "headers": [(b"content-length", b"12abc")]}
    )

    async def call_next(req):
        return "handled"

    with caplog.at_level(logging.WARNING, logger="fedrita.api"):
        assert await enforce_body_size(request, call_next) == "handled"
    assert "Ignoring malformed Content-Length" in caplog.text

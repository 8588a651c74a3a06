import json
from urllib.parse import parse_qsl

import httpx
import pytest

from fedrita.backend import SupabaseBackend, TableQuery
from fedrita.backend.supabase import build_params
from fedrita.exceptions import AuthError, ConfigError, DataLookupError, DuplicateRegistration, InvalidCredentials

USER = {"id": "u1", "email": "ana@example.com"}
TOKEN_BODY = {"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "user": USER}


class FakeSupabase:
    """Routes requests to canned responses keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "no route"})
        status, body, *headers = self.routes[key]
        return httpx.Response(status, json=body, headers=headers[0] if headers else None)


def _client(routes, **kwargs):
    fake = FakeSupabase(routes)
    backend = SupabaseBackend(
        "https://demo.supabase.co/", "anon", transport=httpx.MockTransport(fake), **kwargs
    )
    return backend, fake


def test_build_params_translates_filters():
    query = (
        TableQuery("clients")
        .eq("owner_id", "u1")
        .eq("first_appointment_id", None)
        .in_("id", ["a", "b"])
        .eq_any(email="x@y.com", phone="600")
        .order("created_at", descending=True)
        .limit(5)
    )
    assert build_params(query) == [
        ("select", "*"),
        ("owner_id", "eq.u1"),
        ("first_appointment_id", "is.null"),
        ("id", "in.(a,b)"),
        ("or", '(email.eq."x@y.com",phone.eq.600)'),
        ("order", "created_at.desc"),
        ("limit", "5"),
    ]


def test_requires_url_and_key():
    with pytest.raises(ConfigError):
        SupabaseBackend("", "anon")


@pytest.mark.asyncio
async def test_sign_in_maps_session_and_errors():
    backend, fake = _client({("POST", "/auth/v1/token"): (200, TOKEN_BODY)})
    session = await backend.sign_in_with_password("ana@example.com", "pw")

    assert session.access_token == "at"
    assert session.identity.id == "u1"
    assert session.expires_at is not None
    request = fake.requests[0]
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon"
    assert json.loads(request.content) == {"email": "ana@example.com", "password": "pw"}

    backend, _ = _client({("POST", "/auth/v1/token"): (400, {"error_description": "Invalid login credentials"})})
    with pytest.raises(InvalidCredentials, match="Invalid login credentials"):
        await backend.sign_in_with_password("ana@example.com", "bad")


@pytest.mark.asyncio
async def test_sign_up_variants():
    backend, _ = _client({("POST", "/auth/v1/signup"): (200, TOKEN_BODY)})
    result = await backend.sign_up("ana@example.com", "pw")
    assert result.session.access_token == "at"

    backend, _ = _client({("POST", "/auth/v1/signup"): (200, {"id": "u2", "email": "b@example.com"})})
    result = await backend.sign_up("b@example.com", "pw")
    assert result.session is None
    assert result.identity.id == "u2"

    backend, _ = _client({("POST", "/auth/v1/signup"): (422, {"msg": "User already registered"})})
    with pytest.raises(DuplicateRegistration):
        await backend.sign_up("ana@example.com", "pw")


@pytest.mark.asyncio
async def test_get_user_and_refresh_rejections():
    backend, fake = _client(
        {
            ("GET", "/auth/v1/user"): (401, {"message": "invalid JWT"}),
            ("POST", "/auth/v1/token"): (400, {"error_description": "Invalid Refresh Token"}),
        }
    )
    with pytest.raises(AuthError):
        await backend.get_user("expired")
    assert fake.requests[0].headers["authorization"] == "Bearer expired"
    with pytest.raises(AuthError):
        await backend.refresh_session("rt")


@pytest.mark.asyncio
async def test_sign_out_tolerates_revoked_token():
    backend, _ = _client({("POST", "/auth/v1/logout"): (401, {"message": "gone"})})
    await backend.sign_out("at")


@pytest.mark.asyncio
async def test_table_calls_use_caller_token():
    rows = [{"id": "s1", "company_id": "c1", "name": "Centro"}]
    backend, fake = _client(
        {
            ("GET", "/rest/v1/salons"): (200, rows),
            ("POST", "/rest/v1/salons"): (201, rows),
            ("PATCH", "/rest/v1/salons"): (200, rows),
            ("DELETE", "/rest/v1/salons"): (200, rows),
        }
    )
    query = TableQuery("salons").eq("company_id", "c1")

    assert await backend.select(query, access_token="user-at") == rows
    assert (await backend.insert("salons", {"name": "Centro"}, access_token="user-at"))["id"] == "s1"
    assert await backend.update(query, {"name": "Centro"}, access_token="user-at") == rows
    assert await backend.delete(query, access_token="user-at") == 1

    select, insert, update, delete = fake.requests
    assert select.headers["authorization"] == "Bearer user-at"
    assert dict(parse_qsl(select.url.query.decode())) == {"select": "*", "company_id": "eq.c1"}
    assert insert.headers["prefer"] == "return=representation"
    assert json.loads(insert.content) == [{"name": "Centro"}]
    assert update.method == "PATCH"
    assert delete.url.params["company_id"] == "eq.c1"


@pytest.mark.asyncio
async def test_count_reads_content_range():
    backend, fake = _client({("HEAD", "/rest/v1/clients"): (200, None, {"content-range": "0-9/42"})})
    assert await backend.count(TableQuery("clients").eq("owner_id", "u1")) == 42
    assert fake.requests[0].headers["prefer"] == "count=exact"


@pytest.mark.asyncio
async def test_http_errors_become_lookup_errors():
    backend, _ = _client({("GET", "/rest/v1/salons"): (500, {"message": "boom"})})
    with pytest.raises(DataLookupError, match="boom"):
        await backend.select(TableQuery("salons"))

    def unreachable(request):
        raise httpx.ConnectError("refused", request=request)

    backend = SupabaseBackend("https://demo.supabase.co", "anon", transport=httpx.MockTransport(unreachable))
    with pytest.raises(DataLookupError, match="unreachable"):
        await backend.select(TableQuery("salons"))


@pytest.mark.asyncio
async def test_storage_upload_and_remove():
    backend, fake = _client(
        {
            ("POST", "/storage/v1/object/logos/u1/logo.png"): (200, {"Key": "logos/u1/logo.png"}),
            ("DELETE", "/storage/v1/object/logos"): (200, []),
        }
    )
    assert await backend.upload("logos", "u1/logo.png", b"img", "image/png") == "u1/logo.png"
    await backend.remove("logos", ["u1/logo.png"])

    upload, remove = fake.requests
    assert upload.headers["content-type"] == "image/png"
    assert upload.headers["x-upsert"] == "false"
    assert upload.content == b"img"
    assert json.loads(remove.content) == {"prefixes": ["u1/logo.png"]}


@pytest.mark.asyncio
async def test_find_user_by_email_needs_service_key():
    backend, _ = _client({})
    with pytest.raises(ConfigError):
        await backend.find_user_by_email("ana@example.com")

    backend, fake = _client(
        {("GET", "/auth/v1/admin/users"): (200, {"users": [USER, {"id": "u9", "email": "x@example.com"}]})},
        service_role_key="service",
    )
    found = await backend.find_user_by_email("ANA@example.com")
    assert found.id == "u1"
    assert fake.requests[0].headers["authorization"] == "Bearer service"
    assert await backend.find_user_by_email("ghost@example.com") is None

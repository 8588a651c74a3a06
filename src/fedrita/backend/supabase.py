from __future__ import annotations

import logging
from time import time
from typing import Any, Optional

import httpx

from fedrita.backend.base import Filter, SignUpResult, TableQuery
from fedrita.domain.models import Identity, Session
from fedrita.exceptions import (
    AuthError,
    ConfigError,
    DataLookupError,
    DuplicateRegistration,
    InvalidCredentials,
)

logger = logging.getLogger("fedrita.backend.supabase")


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _quote(value: Any) -> str:
    # PostgREST list/or syntax: values containing reserved characters are double-quoted
    text = _literal(value)
    if any(ch in text for ch in ',.:()" '):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _filter_param(f: Filter) -> str:
    if f.op == "is_null":
        return "is.null"
    if f.op == "in":
        return "in.(" + ",".join(_quote(v) for v in f.value) + ")"
    return f"eq.{_literal(f.value)}"


def build_params(query: TableQuery, columns: str = "*") -> list[tuple[str, str]]:
    """
    Translate a TableQuery into PostgREST query-string parameters.
    """
    params: list[tuple[str, str]] = [("select", columns)]
    for f in query.filters:
        params.append((f.column, _filter_param(f)))
    if query.any_of:
        ors = ",".join(f"{f.column}.eq.{_quote(f.value)}" for f in query.any_of)
        params.append(("or", f"({ors})"))
    if query.ordering:
        params.append(("order", ",".join(f"{col}.{'desc' if desc else 'asc'}" for col, desc in query.ordering)))
    if query.row_limit is not None:
        params.append(("limit", str(query.row_limit)))
    return params


def _json_values(values: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in values.items()}


def _identity(user: dict[str, Any]) -> Identity:
    return Identity(id=str(user["id"]), email=user.get("email"))


def _session(data: dict[str, Any]) -> Session:
    expires_at = data.get("expires_at")
    if expires_at is None and data.get("expires_in"):
        expires_at = time() + float(data["expires_in"])
    return Session(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=float(expires_at) if expires_at is not None else None,
        identity=_identity(data["user"]),
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(
            body.get("msg")
            or body.get("message")
            or body.get("error_description")
            or body.get("error")
            or body
        )
    return str(body)


class SupabaseBackend:
    """
    Supabase REST client: GoTrue (/auth/v1), PostgREST (/rest/v1), Storage (/storage/v1).
    Table and storage calls run with the caller's access token so row-level security applies.
    No retries are attempted; every failure is raised to the caller.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        service_role_key: Optional[str] = None,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not anon_key:
            raise ConfigError("Supabase url and anon key must be configured for the supabase backend.")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._client = httpx.AsyncClient(
            base_url=self.url,
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key},
        )

    def _headers(self, access_token: Optional[str], **extra: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {access_token or self.anon_key}"}
        headers.update(extra)
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Supabase request failed", extra={"method": method, "path": path, "error": str(exc)})
            raise DataLookupError(f"Backend unreachable: {exc}") from exc

    async def _checked(self, method: str, path: str, **kwargs) -> httpx.Response:
        resp = await self._request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")
        return resp

    # ----- auth -----

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if resp.status_code in (400, 401, 422):
            raise InvalidCredentials(_error_message(resp))
        if resp.status_code >= 400:
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")
        return _session(resp.json())

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        resp = await self._request("POST", "/auth/v1/signup", json={"email": email, "password": password})
        if resp.status_code in (400, 422):
            message = _error_message(resp)
            if "registered" in message.lower() or "exists" in message.lower():
                raise DuplicateRegistration(message)
            raise AuthError(message)
        if resp.status_code >= 400:
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")
        data = resp.json()
        if data.get("access_token"):
            session = _session(data)
            return SignUpResult(identity=session.identity, session=session)
        # email confirmation pending: the body is the user object itself
        user = data.get("user") or data
        return SignUpResult(identity=_identity(user), session=None)

    async def sign_out(self, access_token: str) -> None:
        resp = await self._request("POST", "/auth/v1/logout", headers=self._headers(access_token))
        if resp.status_code >= 400 and resp.status_code not in (401, 403, 404):
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")

    async def get_user(self, access_token: str) -> Identity:
        resp = await self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        if resp.status_code in (401, 403):
            raise AuthError(_error_message(resp))
        if resp.status_code >= 400:
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")
        return _identity(resp.json())

    async def refresh_session(self, refresh_token: str) -> Session:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if resp.status_code in (400, 401):
            raise AuthError(_error_message(resp))
        if resp.status_code >= 400:
            raise DataLookupError(f"Backend error {resp.status_code}: {_error_message(resp)}")
        return _session(resp.json())

    async def find_user_by_email(self, email: str) -> Optional[Identity]:
        if not self.service_role_key:
            raise ConfigError("Looking up users by email requires BACKEND__SUPABASE_SERVICE_ROLE_KEY")
        wanted = email.strip().lower()
        page = 1
        while True:
            resp = await self._checked(
                "GET",
                "/auth/v1/admin/users",
                params={"page": page, "per_page": 1000},
                headers={"apikey": self.service_role_key, "Authorization": f"Bearer {self.service_role_key}"},
            )
            users = resp.json().get("users", [])
            for user in users:
                if (user.get("email") or "").lower() == wanted:
                    return _identity(user)
            if len(users) < 1000:
                return None
            page += 1

    # ----- tables -----

    async def select(self, query: TableQuery, access_token: Optional[str] = None) -> list[dict[str, Any]]:
        resp = await self._checked(
            "GET", f"/rest/v1/{query.table}", params=build_params(query), headers=self._headers(access_token)
        )
        return resp.json()

    async def count(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        resp = await self._checked(
            "HEAD",
            f"/rest/v1/{query.table}",
            params=build_params(query),
            headers=self._headers(access_token, Prefer="count=exact"),
        )
        content_range = resp.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        if not total.isdigit():
            raise DataLookupError(f"Backend returned no count for {query.table}")
        return int(total)

    async def insert(self, table: str, row: dict[str, Any], access_token: Optional[str] = None) -> dict[str, Any]:
        TableQuery(table)  # validates the table name
        resp = await self._checked(
            "POST",
            f"/rest/v1/{table}",
            json=[_json_values(row)],
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        rows = resp.json()
        if not rows:
            raise DataLookupError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(
        self, query: TableQuery, values: dict[str, Any], access_token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        resp = await self._checked(
            "PATCH",
            f"/rest/v1/{query.table}",
            params=build_params(query),
            json=_json_values(values),
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        return resp.json()

    async def delete(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        resp = await self._checked(
            "DELETE",
            f"/rest/v1/{query.table}",
            params=build_params(query),
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        return len(resp.json())

    # ----- storage -----

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> str:
        await self._checked(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            content=content,
            headers=self._headers(
                access_token,
                **{"Content-Type": content_type or "application/octet-stream", "x-upsert": "false"},
            ),
        )
        return path

    async def remove(self, bucket: str, paths: list[str], access_token: Optional[str] = None) -> None:
        await self._checked(
            "DELETE",
            f"/storage/v1/object/{bucket}",
            json={"prefixes": paths},
            headers=self._headers(access_token),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

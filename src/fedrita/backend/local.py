from __future__ import annotations

import asyncio
import logging
import secrets
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from time import time
from typing import Any, Optional
from uuid import uuid4

import bcrypt

from fedrita.backend.base import SignUpResult, TableQuery, check_identifier
from fedrita.domain.models import Identity, Session
from fedrita.exceptions import AuthError, DataLookupError, DuplicateRegistration, InvalidCredentials

logger = logging.getLogger("fedrita.backend.local")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS auth_users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        confirmed INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_sessions (
        access_token TEXT PRIMARY KEY,
        refresh_token TEXT UNIQUE,
        user_id TEXT NOT NULL,
        expires_at REAL NOT NULL,
        FOREIGN KEY (user_id) REFERENCES auth_users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS companies (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        phone TEXT,
        contact_email TEXT,
        whatsapp_url TEXT,
        logo_url TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS salons (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL,
        owner_id TEXT,
        manager_id TEXT,
        name TEXT NOT NULL,
        address TEXT,
        phone TEXT,
        opening_hours TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (company_id) REFERENCES companies(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS employees (
        id TEXT PRIMARY KEY,
        salon_id TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        specialty TEXT,
        availability TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (salon_id) REFERENCES salons(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id TEXT PRIMARY KEY,
        salon_id TEXT NOT NULL,
        employee_id TEXT,
        owner_id TEXT NOT NULL,
        client_name TEXT,
        client_email TEXT,
        client_phone TEXT,
        service TEXT,
        appointment_time TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (salon_id) REFERENCES salons(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS clients (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT,
        email TEXT,
        phone TEXT,
        first_appointment_id TEXT,
        created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_companies_owner ON companies (owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_salons_manager ON salons (manager_id);",
    "CREATE INDEX IF NOT EXISTS idx_appointments_salon ON appointments (salon_id, appointment_time);",
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat()
    return value


class LocalBackend:
    """
    SQLite + local directory stand-in for the hosted backend.
    Same surface as SupabaseBackend; used for local development and tests.
    Row-level security is not emulated: access tokens are accepted and ignored
    on table calls, scoping is done by the service layer filters.
    """

    def __init__(
        self,
        db_path: Path,
        storage_dir: Path,
        *,
        autoconfirm: bool = True,
        session_ttl_seconds: int = 3600,
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.autoconfirm = autoconfirm
        self.session_ttl_seconds = session_ttl_seconds
        self._ensure_schema()

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self):
        with self._connect() as conn:
            cur = conn.cursor()
            for statement in _SCHEMA:
                cur.execute(statement)
            conn.commit()

    def _execute(self, sql: str, params: tuple = (), fetch: bool = True) -> tuple[list[dict[str, Any]], int]:
        try:
            with self._connect() as conn:
                cur = conn.execute(sql, params)
                rows = [dict(r) for r in cur.fetchall()] if fetch else []
                conn.commit()
                return rows, cur.rowcount
        except sqlite3.Error as exc:
            logger.warning("Local backend query failed", extra={"sql": sql.split()[0], "error": str(exc)})
            raise DataLookupError(f"Database error: {exc}") from exc

    async def _run(self, sql: str, params: tuple = (), *, fetch: bool = True) -> tuple[list[dict[str, Any]], int]:
        # sqlite3 blocks; keep it off the event loop
        return await asyncio.to_thread(self._execute, sql, params, fetch)

    # ----- auth -----

    async def _issue_session(self, identity: Identity) -> Session:
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(32)
        expires_at = time() + self.session_ttl_seconds
        await self._run(
            "INSERT INTO auth_sessions (access_token, refresh_token, user_id, expires_at) VALUES (?, ?, ?, ?)",
            (access_token, refresh_token, identity.id, expires_at),
            fetch=False,
        )
        return Session(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at, identity=identity)

    async def _user_by_email(self, email: str) -> Optional[dict[str, Any]]:
        rows, _ = await self._run("SELECT * FROM auth_users WHERE email = ?", (email.strip(),))
        return rows[0] if rows else None

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        user = await self._user_by_email(email)
        if not user or not await asyncio.to_thread(_check_password, password, user["password_hash"]):
            raise InvalidCredentials("Invalid login credentials")
        if not user["confirmed"]:
            raise InvalidCredentials("Email not confirmed")
        return await self._issue_session(Identity(id=user["id"], email=user["email"]))

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        email = email.strip()
        if await self._user_by_email(email):
            raise DuplicateRegistration("User already registered")
        password_hash = await asyncio.to_thread(_hash_password, password)
        identity = Identity(id=str(uuid4()), email=email)
        await self._run(
            "INSERT INTO auth_users (id, email, password_hash, confirmed, created_at) VALUES (?, ?, ?, ?, ?)",
            (identity.id, email, password_hash, int(self.autoconfirm), _now_iso()),
            fetch=False,
        )
        session = await self._issue_session(identity) if self.autoconfirm else None
        return SignUpResult(identity=identity, session=session)

    async def sign_out(self, access_token: str) -> None:
        await self._run("DELETE FROM auth_sessions WHERE access_token = ?", (access_token,), fetch=False)

    async def get_user(self, access_token: str) -> Identity:
        rows, _ = await self._run(
            """
            SELECT u.id, u.email, s.expires_at FROM auth_sessions s
            JOIN auth_users u ON u.id = s.user_id
            WHERE s.access_token = ?
            """,
            (access_token,),
        )
        if not rows or rows[0]["expires_at"] < time():
            raise AuthError("Invalid or expired token")
        return Identity(id=rows[0]["id"], email=rows[0]["email"])

    async def refresh_session(self, refresh_token: str) -> Session:
        rows, _ = await self._run(
            """
            SELECT u.id, u.email, s.access_token FROM auth_sessions s
            JOIN auth_users u ON u.id = s.user_id
            WHERE s.refresh_token = ?
            """,
            (refresh_token,),
        )
        if not rows:
            raise AuthError("Invalid refresh token")
        await self._run("DELETE FROM auth_sessions WHERE access_token = ?", (rows[0]["access_token"],), fetch=False)
        return await self._issue_session(Identity(id=rows[0]["id"], email=rows[0]["email"]))

    async def find_user_by_email(self, email: str) -> Optional[Identity]:
        user = await self._user_by_email(email)
        if not user:
            return None
        return Identity(id=user["id"], email=user["email"])

    # ----- tables -----

    @staticmethod
    def _where(query: TableQuery) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for f in query.filters:
            if f.op == "is_null":
                clauses.append(f"{f.column} IS NULL")
            elif f.op == "in":
                if not f.value:
                    clauses.append("0")
                    continue
                clauses.append(f"{f.column} IN ({', '.join('?' for _ in f.value)})")
                params.extend(_to_db(v) for v in f.value)
            else:
                clauses.append(f"{f.column} = ?")
                params.append(_to_db(f.value))
        if query.any_of:
            clauses.append("(" + " OR ".join(f"{f.column} = ?" for f in query.any_of) + ")")
            params.extend(_to_db(f.value) for f in query.any_of)
        sql = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return sql, params

    async def select(self, query: TableQuery, access_token: Optional[str] = None) -> list[dict[str, Any]]:
        where, params = self._where(query)
        sql = f"SELECT * FROM {query.table}{where}"
        if query.ordering:
            parts = [f"{col} {'DESC' if desc else 'ASC'}" for col, desc in query.ordering]
            sql += " ORDER BY " + ", ".join(parts) + f", rowid {'DESC' if query.ordering[-1][1] else 'ASC'}"
        if query.row_limit is not None:
            sql += " LIMIT ?"
            params.append(query.row_limit)
        rows, _ = await self._run(sql, tuple(params))
        return rows

    async def count(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        where, params = self._where(query)
        rows, _ = await self._run(f"SELECT COUNT(*) AS n FROM {query.table}{where}", tuple(params))
        return int(rows[0]["n"])

    async def insert(self, table: str, row: dict[str, Any], access_token: Optional[str] = None) -> dict[str, Any]:
        TableQuery(table)  # validates the table name
        data = {check_identifier(k): _to_db(v) for k, v in row.items()}
        data.setdefault("id", str(uuid4()))
        data.setdefault("created_at", _now_iso())
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        await self._run(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(data.values()), fetch=False)
        rows, _ = await self._run(f"SELECT * FROM {table} WHERE id = ?", (data["id"],))
        return rows[0]

    async def update(
        self, query: TableQuery, values: dict[str, Any], access_token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        if not values:
            return await self.select(query)
        matched = await self.select(TableQuery(query.table, filters=query.filters, any_of=query.any_of))
        if not matched:
            return []
        assignments = ", ".join(f"{check_identifier(k)} = ?" for k in values)
        ids = [r["id"] for r in matched]
        await self._run(
            f"UPDATE {query.table} SET {assignments} WHERE id IN ({', '.join('?' for _ in ids)})",
            tuple(_to_db(v) for v in values.values()) + tuple(ids),
            fetch=False,
        )
        return await self.select(TableQuery(query.table).in_("id", ids))

    async def delete(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        where, params = self._where(query)
        _, rowcount = await self._run(f"DELETE FROM {query.table}{where}", tuple(params), fetch=False)
        return max(rowcount, 0)

    # ----- storage -----

    def _object_path(self, bucket: str, path: str) -> Path:
        root = (self.storage_dir / check_identifier(bucket)).resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise DataLookupError(f"Invalid object path: {path}")
        return target

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> str:
        target = self._object_path(bucket, path)
        if target.exists():
            raise DataLookupError("The resource already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise DataLookupError(f"Upload failed: {exc}") from exc
        return path

    async def remove(self, bucket: str, paths: list[str], access_token: Optional[str] = None) -> None:
        for path in paths:
            try:
                self._object_path(bucket, path).unlink(missing_ok=True)
            except OSError as exc:
                raise DataLookupError(f"Remove failed: {exc}") from exc

    async def aclose(self) -> None:
        return None

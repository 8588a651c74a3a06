from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Optional, Protocol

from fedrita.domain.models import Identity, Session

TABLES = ("companies", "salons", "employees", "appointments", "clients")

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


def check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name or ""):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


@dataclass(frozen=True)
class Filter:
    column: str
    op: str  # eq | in | is_null
    value: Any = None


@dataclass(frozen=True)
class TableQuery:
    """
    Backend-neutral description of a filtered table read.
    Builder methods return new instances, so a base query can be reused.

        TableQuery("salons").eq("company_id", cid).order("created_at", descending=True)
    """

    table: str
    filters: tuple[Filter, ...] = ()
    any_of: tuple[Filter, ...] = ()  # OR-ed equality filters, AND-ed with the rest
    ordering: tuple[tuple[str, bool], ...] = ()  # (column, descending)
    row_limit: Optional[int] = None

    def __post_init__(self):
        if self.table not in TABLES:
            raise ValueError(f"Unknown table: {self.table!r}")

    def eq(self, column: str, value: Any) -> "TableQuery":
        op = "is_null" if value is None else "eq"
        return replace(self, filters=self.filters + (Filter(check_identifier(column), op, value),))

    def in_(self, column: str, values: list[Any]) -> "TableQuery":
        return replace(self, filters=self.filters + (Filter(check_identifier(column), "in", tuple(values)),))

    def eq_any(self, **pairs: Any) -> "TableQuery":
        """Match rows where at least one of the given column=value pairs holds (None values skipped)."""
        extra = tuple(Filter(check_identifier(col), "eq", val) for col, val in pairs.items() if val)
        return replace(self, any_of=self.any_of + extra)

    def order(self, column: str, descending: bool = False) -> "TableQuery":
        return replace(self, ordering=self.ordering + ((check_identifier(column), descending),))

    def limit(self, n: int) -> "TableQuery":
        return replace(self, row_limit=int(n))


@dataclass
class SignUpResult:
    identity: Identity
    session: Optional[Session] = None  # None while the email awaits confirmation


class Backend(Protocol):
    """
    Boundary to the backend-as-a-service: authentication, tables, file storage.
    Implementations raise fedrita.exceptions.AuthError subclasses for rejected
    auth calls and DataLookupError for transport/database failures.
    """

    # --- auth ---
    async def sign_in_with_password(self, email: str, password: str) -> Session:
        ...

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        ...

    async def sign_out(self, access_token: str) -> None:
        ...

    async def get_user(self, access_token: str) -> Identity:
        ...

    async def refresh_session(self, refresh_token: str) -> Session:
        ...

    async def find_user_by_email(self, email: str) -> Optional[Identity]:
        ...

    # --- tables ---
    async def select(self, query: TableQuery, access_token: Optional[str] = None) -> list[dict[str, Any]]:
        ...

    async def count(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        ...

    async def insert(self, table: str, row: dict[str, Any], access_token: Optional[str] = None) -> dict[str, Any]:
        ...

    async def update(
        self, query: TableQuery, values: dict[str, Any], access_token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        ...

    async def delete(self, query: TableQuery, access_token: Optional[str] = None) -> int:
        ...

    # --- storage ---
    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> str:
        ...

    async def remove(self, bucket: str, paths: list[str], access_token: Optional[str] = None) -> None:
        ...

    async def aclose(self) -> None:
        ...

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from fedrita.auth.storage import COMPANY_KEY, KeyValueStore
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.models import Company, Profile, Salon
from fedrita.exceptions import DataLookupError

logger = logging.getLogger("fedrita.auth.profile")


class ProfileResolver:
    """
    Derives the role of an identity from the tables:
    - owner of a company -> admin (wins over everything else)
    - manager_id of a salon -> manager, with the salon's parent company
    - otherwise no grant
    The resolved company is mirrored into storage as a display hint.
    """

    def __init__(self, backend: Backend, storage: KeyValueStore):
        self.backend = backend
        self.storage = storage

    async def _first(self, query: TableQuery, access_token: Optional[str], what: str) -> Optional[dict[str, Any]]:
        rows = await self.backend.select(query.order("created_at").limit(2), access_token=access_token)
        if len(rows) > 1:
            logger.warning(
                "Multiple %s rows matched; using the oldest",
                what,
                extra={"table": query.table, "chosen_id": rows[0].get("id")},
            )
        return rows[0] if rows else None

    async def resolve(self, identity_id: str, access_token: Optional[str] = None, *, mirror: bool = True) -> Profile:
        """
        Never raises: lookup failures are logged and resolve to Profile.none().
        mirror=False skips the storage write so the caller can decide whether the
        result is still current before calling mirror() itself.
        """
        try:
            profile = await self._resolve(identity_id, access_token)
        except (DataLookupError, ValidationError, KeyError) as exc:
            logger.error("Profile lookup failed", extra={"identity_id": identity_id, "error": str(exc)})
            profile = Profile.none()
        if mirror:
            self.mirror(profile.company)
        return profile

    async def _resolve(self, identity_id: str, access_token: Optional[str]) -> Profile:
        company_row, salon_row = await asyncio.gather(
            self._first(TableQuery("companies").eq("owner_id", identity_id), access_token, "owned company"),
            self._first(TableQuery("salons").eq("manager_id", identity_id), access_token, "managed salon"),
        )
        if company_row:
            return Profile.admin(Company.model_validate(company_row))
        if salon_row:
            salon = Salon.model_validate(salon_row)
            parent = await self._first(TableQuery("companies").eq("id", salon.company_id), access_token, "company")
            return Profile.manager(salon, Company.model_validate(parent) if parent else None)
        return Profile.none()

    def mirror(self, company: Optional[Company]) -> None:
        if company is None:
            self.storage.remove(COMPANY_KEY)
        else:
            self.storage.set(COMPANY_KEY, company.model_dump(mode="json"))

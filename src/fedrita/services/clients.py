from __future__ import annotations

from collections import Counter
from typing import List, Optional

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.models import Client
from fedrita.exceptions import RecordNotFound
from fedrita.services.common import clean, data_owner_id


class ClientService:
    """
    Clients belong to the company owner. Managers see the clients of their
    salon's owner.
    """

    def __init__(self, backend: Backend):
        self.backend = backend

    async def lookup(self, state: AuthState, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Client]:
        """Autocomplete helper: email takes precedence over phone."""
        email, phone = clean(email), clean(phone)
        if not email and not phone:
            return None
        query = TableQuery("clients").eq("owner_id", data_owner_id(state))
        query = query.eq("email", email) if email else query.eq("phone", phone)
        rows = await self.backend.select(query.limit(1), access_token=state.access_token)
        return Client.model_validate(rows[0]) if rows else None

    async def list(self, state: AuthState) -> List[Client]:
        owner_id = data_owner_id(state)
        rows = await self.backend.select(
            TableQuery("clients").eq("owner_id", owner_id).order("created_at", descending=True),
            access_token=state.access_token,
        )
        if not rows:
            return []

        appointments = await self.backend.select(
            TableQuery("appointments").eq("owner_id", owner_id), access_token=state.access_token
        )
        by_email = Counter(a["client_email"].lower() for a in appointments if a.get("client_email"))
        by_phone = Counter(a["client_phone"] for a in appointments if a.get("client_phone"))
        both = Counter(
            (a["client_email"].lower(), a["client_phone"])
            for a in appointments
            if a.get("client_email") and a.get("client_phone")
        )

        clients = []
        for row in rows:
            email = (row.get("email") or "").lower()
            phone = row.get("phone") or ""
            # appointments matching on both email and phone are counted once
            count = by_email.get(email, 0) + by_phone.get(phone, 0) - both.get((email, phone), 0)
            clients.append(Client.model_validate({**row, "reservations_count": count}))
        return clients

    async def count(self, state: AuthState) -> int:
        return await self.backend.count(
            TableQuery("clients").eq("owner_id", data_owner_id(state)), access_token=state.access_token
        )

    async def delete(self, state: AuthState, client_id: str) -> None:
        deleted = await self.backend.delete(
            TableQuery("clients").eq("id", client_id).eq("owner_id", data_owner_id(state)),
            access_token=state.access_token,
        )
        if not deleted:
            raise RecordNotFound("Cliente no encontrado.")

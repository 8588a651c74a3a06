from __future__ import annotations

import logging
from typing import List

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend, TableQuery
from fedrita.domain.forms import SalonForm
from fedrita.domain.models import Salon
from fedrita.exceptions import RecordNotFound
from fedrita.services.common import clean, require_company

logger = logging.getLogger("fedrita.services.salons")


class SalonService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def create(self, state: AuthState, form: SalonForm) -> Salon:
        identity, company = require_company(state)
        row = {
            "name": form.name.strip(),
            "address": clean(form.address),
            "phone": clean(form.phone),
            "opening_hours": clean(form.opening_hours),
            "company_id": company.id,
            "owner_id": identity.id,
        }
        created = await self.backend.insert("salons", row, access_token=state.access_token)
        logger.info("Salon created", extra={"salon_id": created.get("id"), "company_id": company.id})
        return Salon.model_validate(created)

    async def list_for_company(self, state: AuthState) -> List[Salon]:
        _, company = require_company(state)
        rows = await self.backend.select(
            TableQuery("salons").eq("company_id", company.id).order("created_at", descending=True),
            access_token=state.access_token,
        )
        return [Salon.model_validate(r) for r in rows]

    async def delete(self, state: AuthState, salon_id: str) -> None:
        _, company = require_company(state)
        deleted = await self.backend.delete(
            TableQuery("salons").eq("id", salon_id).eq("company_id", company.id),
            access_token=state.access_token,
        )
        if not deleted:
            raise RecordNotFound("Salón no encontrado.")
        logger.info("Salon deleted", extra={"salon_id": salon_id, "company_id": company.id})

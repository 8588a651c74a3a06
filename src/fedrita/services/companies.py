from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from time import time
from typing import Optional

from fedrita.auth.context import AuthState
from fedrita.backend.base import Backend
from fedrita.domain.forms import CompanyForm
from fedrita.domain.models import Company
from fedrita.exceptions import DataLookupError
from fedrita.services.common import clean, require_identity

logger = logging.getLogger("fedrita.services.companies")


@dataclass
class LogoUpload:
    filename: str
    content: bytes
    content_type: Optional[str] = None


class CompanyService:
    def __init__(self, backend: Backend, logo_bucket: str = "logos"):
        self.backend = backend
        self.logo_bucket = logo_bucket

    async def register_company(
        self, state: AuthState, form: CompanyForm, logo: Optional[LogoUpload] = None
    ) -> Company:
        """
        Insert the company owned by the signed-in identity.
        The logo is uploaded first to <identity_id>/<epoch_ms>-<filename>; if the
        insert then fails the uploaded object is removed again.
        The caller is expected to refresh the auth profile afterwards.
        """
        identity = require_identity(state, "Debes estar autenticado para registrar una empresa.")

        logo_path = None
        if logo is not None and logo.content:
            filename = PurePath(logo.filename or "logo").name
            logo_path = await self.backend.upload(
                self.logo_bucket,
                f"{identity.id}/{int(time() * 1000)}-{filename}",
                logo.content,
                content_type=logo.content_type,
                access_token=state.access_token,
            )

        row = {
            "name": form.name.strip(),
            "phone": clean(form.phone),
            "contact_email": clean(form.contact_email) or identity.email,
            "whatsapp_url": clean(form.whatsapp_url),
            "logo_url": logo_path,
            "owner_id": identity.id,
        }
        try:
            created = await self.backend.insert("companies", row, access_token=state.access_token)
        except DataLookupError:
            if logo_path:
                try:
                    await self.backend.remove(self.logo_bucket, [logo_path], access_token=state.access_token)
                except DataLookupError as exc:
                    logger.warning("Could not remove orphaned logo", extra={"path": logo_path, "error": str(exc)})
            raise

        company = Company.model_validate(created)
        logger.info("Company registered", extra={"company_id": company.id, "owner_id": identity.id})
        return company

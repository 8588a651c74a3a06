from fastapi import APIRouter

from fedrita.api.views import page
from fedrita.config import settings
from fedrita.marketing import load_home_content

router = APIRouter(tags=["system"])


@router.get("/health")
def health():
    return {"status": "ok", "version": settings.app.version, "backend": settings.backend.kind}


@router.get("/")
def home():
    content = load_home_content(settings.paths.content_path)
    return page("home", content=content.model_dump())

from fastapi import APIRouter

from ...core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/info")
def info():
    """Return application info: name and version."""
    return {"name": settings.app_name, "version": settings.version}

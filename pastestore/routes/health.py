"""
Health check route.
"""
from fastapi import APIRouter, Depends
from pastestore.models import HealthCheck
from pastestore.database import PasteStore
from pastestore.routes.deps import get_store

router = APIRouter()


@router.get("/api/healthz", response_model=HealthCheck)
def health_check(store: PasteStore = Depends(get_store)) -> HealthCheck:
    """
    Health check endpoint.
    Returns 200 with ok=true if application and store are healthy.
    """
    return HealthCheck(ok=store.is_healthy())

"""Estadísticas de ingesta."""

from fastapi import APIRouter, HTTPException

from ..receiver import get_service

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.get("/stats")
def ingest_stats():
    """Stats por transporte, dispatcher, suscriptores y relay."""
    service = get_service()
    if service is None:
        raise HTTPException(status_code=503, detail="service not started")
    return service.stats

"""Health and readiness endpoints."""

from fastapi import APIRouter, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..receiver import get_service

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/ready")
def ready():
    """Readiness probe: todos los transportes habilitados conectados/leyendo."""
    service = get_service()
    if service is None or not service.is_running:
        raise HTTPException(status_code=503, detail="not ready")

    status = service.health_check()
    if not status.healthy:
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready", **status.to_dict()}


@router.get("/metrics")
def metrics():
    """Métricas Prometheus en formato texto."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

"""Monitoring - Stats, health y métricas Prometheus."""

from .stats import Stats
from .health import HealthChecker, HealthStatus

__all__ = ["Stats", "HealthChecker", "HealthStatus"]

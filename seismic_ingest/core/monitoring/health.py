"""Health checks del servicio de ingesta."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...sinks.redis_stream import RedisConnection


@dataclass
class HealthStatus:
    """Estado de salud del sistema."""
    healthy: bool
    push_enabled: bool
    push_connected: bool
    serial_enabled: bool
    serial_streaming: bool
    redis_connected: bool
    frames_delivered: int
    frames_failed: int
    subscribers: int

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "push_enabled": self.push_enabled,
            "push_connected": self.push_connected,
            "serial_enabled": self.serial_enabled,
            "serial_streaming": self.serial_streaming,
            "redis_connected": self.redis_connected,
            "frames_delivered": self.frames_delivered,
            "frames_failed": self.frames_failed,
            "subscribers": self.subscribers,
        }


class HealthChecker:
    """Verifica el estado de salud del sistema.

    Sano = cada transporte habilitado está conectado/leyendo.
    Redis es opcional y no afecta `healthy`.
    """

    def __init__(self, redis_conn: Optional[RedisConnection] = None):
        self._redis = redis_conn

    def check_redis(self) -> bool:
        if not self._redis:
            return False
        return self._redis.is_connected

    def get_status(
        self,
        push_enabled: bool,
        push_connected: bool,
        serial_enabled: bool,
        serial_streaming: bool,
        delivered: int,
        failed: int,
        subscribers: int,
    ) -> HealthStatus:
        """Obtiene estado de salud completo."""
        transports_ok = (
            (push_enabled or serial_enabled)
            and (not push_enabled or push_connected)
            and (not serial_enabled or serial_streaming)
        )
        return HealthStatus(
            healthy=bool(transports_ok),
            push_enabled=push_enabled,
            push_connected=push_connected,
            serial_enabled=serial_enabled,
            serial_streaming=serial_streaming,
            redis_connected=self.check_redis(),
            frames_delivered=delivered,
            frames_failed=failed,
            subscribers=subscribers,
        )

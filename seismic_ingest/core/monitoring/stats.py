"""Estadísticas de procesamiento."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Stats:
    """Estadísticas de procesamiento de frames de un transporte."""

    received: int = 0
    delivered: int = 0
    no_data: int = 0
    ignored: int = 0
    failed: int = 0
    samples: int = 0
    last_message_at: float = 0
    started_at: datetime = field(default_factory=_now)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} delivered={self.delivered} "
            f"no_data={self.no_data} ignored={self.ignored} failed={self.failed} "
            f"samples={self.samples}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        return {
            "received": self.received,
            "delivered": self.delivered,
            "no_data": self.no_data,
            "ignored": self.ignored,
            "failed": self.failed,
            "samples": self.samples,
            "last_message_at": self.last_message_at,
            "started_at": self.started_at.isoformat(),
            "success_rate": self._success_rate(),
        }

    def _success_rate(self) -> float:
        """Calcula tasa de éxito."""
        total = self.delivered + self.failed
        if total == 0:
            return 1.0
        return self.delivered / total

    def reset(self):
        """Reinicia estadísticas."""
        self.received = 0
        self.delivered = 0
        self.no_data = 0
        self.ignored = 0
        self.failed = 0
        self.samples = 0
        self.last_message_at = 0
        self.started_at = _now()

"""Síntesis de timestamps por muestra.

El protocolo no transmite el tiempo entre muestras de un lote, así que
se aproxima: el instante de llegada del frame es el timestamp de la
ÚLTIMA muestra y las anteriores se retrasan un paso fijo por posición:

    timestamp[i] = arrival - (n - 1 - i) * step

Es una aproximación, no tiempo real de adquisición. Cada canal se
sincroniza por separado con el mismo arrival, así las muestras del mismo
índice en X/Y/Z quedan alineadas desde el final.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

DEFAULT_STEP = timedelta(milliseconds=10)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampSynthesizer:
    """Asigna timestamps absolutos a las muestras de un canal."""

    def __init__(self, step: timedelta = DEFAULT_STEP):
        if step < timedelta(0):
            raise ValueError("step must be non-negative")
        self._step = step

    @property
    def step(self) -> timedelta:
        return self._step

    def stamp(
        self,
        values: Sequence[float],
        arrival: Optional[datetime] = None,
    ) -> List[Tuple[float, datetime]]:
        """Devuelve [(valor, timestamp)] en el mismo orden que values."""
        if arrival is None:
            arrival = utc_now()
        n = len(values)
        return [
            (value, arrival - (n - 1 - i) * self._step)
            for i, value in enumerate(values)
        ]

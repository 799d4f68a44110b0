"""Envelope estructurado del transporte push.

Formato:
{
    "type": "earthquake-data",
    "payload": {
        "amplitude": 3.5 | "3.5",
        "timestamp": "2026-01-31T08:00:00.123Z" | 1769846400123,
        "metadata": {...}
    }
}

Solo type == "earthquake-data" llega al procesamiento de canales; cualquier
otro tipo se ignora sin error.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator

EARTHQUAKE_DATA = "earthquake-data"


class EarthquakePayload(BaseModel):
    """Payload de una lectura individual enviada como envelope."""

    amplitude: float
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @validator("amplitude", pre=True)
    def coerce_amplitude(cls, v):
        # bool es subclase de int; no es una amplitud
        if isinstance(v, bool):
            raise ValueError("amplitude must be numeric")
        if isinstance(v, str):
            v = v.strip()
            try:
                return float(v)
            except ValueError:
                raise ValueError(f"amplitude is not numeric: {v!r}")
        return v

    @validator("amplitude")
    def validate_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError("amplitude must be finite")
        return v

    @validator("timestamp", pre=True)
    def parse_timestamp(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            raise ValueError("invalid timestamp")
        if isinstance(v, (int, float)):
            # epoch en milisegundos (Date.now() del firmware/simulador)
            return datetime.fromtimestamp(v / 1000.0, tz=timezone.utc)
        if isinstance(v, str):
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        return v

    @validator("metadata", pre=True)
    def default_metadata(cls, v):
        return v or {}


def build_envelope(payload: Dict[str, Any], kind: str = EARTHQUAKE_DATA) -> Dict[str, Any]:
    """Construye el envelope {type, payload} para enviar por el transporte push."""
    return {"type": kind, "payload": payload}

"""Sample - modelo canónico de una lectura sísmica decodificada."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class Channel(str, Enum):
    """Canal de forma de onda.

    UNLABELED cuando el frame trae una sola forma de onda sin marcador.
    """
    UNLABELED = "unlabeled"
    X = "X"
    Y = "Y"
    Z = "Z"


@dataclass
class Sample:
    """Lectura escalar con timestamp sintetizado.

    Este es el contrato que reciben los suscriptores:
    Transport → Grammar → Synthesizer → Registry → callbacks
    """

    amplitude: float
    timestamp: datetime
    channel: Channel = Channel.UNLABELED

    # source, raw, batchIndex, batchSize (+ temperature/humidity/voltage)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def batch_index(self) -> int:
        return self.metadata.get("batchIndex", 0)

    @property
    def batch_size(self) -> int:
        return self.metadata.get("batchSize", 1)

    def to_dict(self) -> Dict[str, Any]:
        """Formato JSON-friendly (sinks, logs, simulador)."""
        return {
            "amplitude": float(self.amplitude),
            "timestamp": self.timestamp.isoformat(),
            "channel": self.channel.value,
            "metadata": dict(self.metadata),
        }

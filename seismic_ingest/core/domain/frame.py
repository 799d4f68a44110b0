"""Frame - resultado efímero de decodificar una unidad del protocolo.

Variantes (se resuelven una sola vez en el decoder y el processor las
despacha de forma exhaustiva):

- BareValue     → "3.14"
- MultiChannel  → "1,2,3" / "X1,2" / "T25H60V90,X1,2,Y3,4,Z5,6"
- Envelope      → {"type": "earthquake-data", "payload": {...}}
- Ignored       → JSON válido de otro tipo
- NoData        → ningún valor numérico válido
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .sample import Channel

if TYPE_CHECKING:
    from ..protocol.envelope import EarthquakePayload


DATA_TYPES = {
    1: "waveform",
    2: "dual-waveform",
    3: "triple-waveform",
}


@dataclass(frozen=True)
class FrameMetadata:
    """Prefijo ambiental T<int>H<int>V<int>. Campos ausentes quedan en None."""
    temperature: Optional[int] = None
    humidity: Optional[int] = None
    voltage: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.temperature is None and self.humidity is None and self.voltage is None

    def as_dict(self) -> Dict[str, int]:
        """Solo los campos presentes."""
        out: Dict[str, int] = {}
        if self.temperature is not None:
            out["temperature"] = self.temperature
        if self.humidity is not None:
            out["humidity"] = self.humidity
        if self.voltage is not None:
            out["voltage"] = self.voltage
        return out


@dataclass
class ChannelPayload:
    channel: Channel
    values: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class BareValue:
    value: float


@dataclass
class MultiChannel:
    channels: List[ChannelPayload]
    metadata: FrameMetadata = field(default_factory=FrameMetadata)

    @property
    def marked(self) -> bool:
        """True si los canales vienen etiquetados X/Y/Z."""
        return any(c.channel is not Channel.UNLABELED for c in self.channels)

    @property
    def data_type(self) -> Optional[str]:
        if not self.marked:
            return None
        return DATA_TYPES.get(len(self.channels))

    @property
    def total_samples(self) -> int:
        return sum(len(c) for c in self.channels)

    def channel(self, channel: Channel) -> Optional[ChannelPayload]:
        for c in self.channels:
            if c.channel is channel:
                return c
        return None


@dataclass
class Envelope:
    kind: str
    payload: "EarthquakePayload"


@dataclass
class Ignored:
    reason: str
    data: Any = None


@dataclass
class NoData:
    reason: str = "no numeric values"


DecodeResult = Union[BareValue, MultiChannel, Envelope, Ignored, NoData]

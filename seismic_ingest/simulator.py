"""Simulador de tráfico sísmico.

Genera frames en la gramática de líneas (y envelopes JSON) para probar
el pipeline contra un broker o un puerto serie sin sensor real.

Formatos:
- "7.31"                              → valor suelto
- "3.12,8.40,0.77,5.02,9.93"          → forma de onda sin marcador
- "T27H55V88,X1.20,...,Y0.61,..."     → dual (6 X + 4 Y)
- "T27H55V88,X...,Y...,Z2.50,..."     → triple (6 X + 4 Y + 5 Z)
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .core.domain.frame import FrameMetadata
from .core.domain.sample import Channel
from .core.protocol.encoder import encode_envelope, encode_frame, encode_value
from .transports.base import TransportResult
from .transports.push.transport import PushTransport
from .transports.serial.transport import SerialTransport

logger = logging.getLogger(__name__)

PRECISION = 2

# Rangos de los valores simulados
X_RANGE = (1.0, 6.0)
Y_RANGE = (0.5, 3.5)
Z_RANGE = (2.0, 6.0)
TEMPERATURE_RANGE = (20, 34)
HUMIDITY_RANGE = (40, 79)
VOLTAGE_RANGE = (75, 94)

SimTransport = Union[PushTransport, SerialTransport]


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random()


def _uniform(rng: random.Random, bounds, count: int) -> List[float]:
    low, high = bounds
    return [round(rng.uniform(low, high), PRECISION) for _ in range(count)]


def random_amplitude(rng: Optional[random.Random] = None) -> float:
    """Amplitud aleatoria en [0, 10) con dos decimales."""
    return round(_rng(rng).random() * 10, PRECISION)


def random_metadata(rng: Optional[random.Random] = None) -> FrameMetadata:
    rng = _rng(rng)
    return FrameMetadata(
        temperature=rng.randint(*TEMPERATURE_RANGE),
        humidity=rng.randint(*HUMIDITY_RANGE),
        voltage=rng.randint(*VOLTAGE_RANGE),
    )


def multiple_amplitudes(count: int = 5, rng: Optional[random.Random] = None) -> str:
    """Frame sin marcador con `count` amplitudes."""
    if count < 1:
        raise ValueError("count must be >= 1")
    rng = _rng(rng)
    values = [random_amplitude(rng) for _ in range(count)]
    return encode_frame({Channel.UNLABELED: values}, precision=PRECISION)


def dual_waveform_frame(rng: Optional[random.Random] = None) -> str:
    rng = _rng(rng)
    metadata = random_metadata(rng)
    channels = {
        Channel.X: _uniform(rng, X_RANGE, 6),
        Channel.Y: _uniform(rng, Y_RANGE, 4),
    }
    return encode_frame(channels, metadata, precision=PRECISION)


def triple_waveform_frame(rng: Optional[random.Random] = None) -> str:
    rng = _rng(rng)
    metadata = random_metadata(rng)
    channels = {
        Channel.X: _uniform(rng, X_RANGE, 6),
        Channel.Y: _uniform(rng, Y_RANGE, 4),
        Channel.Z: _uniform(rng, Z_RANGE, 5),
    }
    return encode_frame(channels, metadata, precision=PRECISION)


def earthquake_payload(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Payload de envelope con timestamp en epoch ms."""
    now = datetime.now(timezone.utc)
    return {
        "amplitude": random_amplitude(rng),
        "timestamp": int(now.timestamp() * 1000),
        "metadata": {"simulated": True},
    }


# ----------------------------------------------------------------------
# Envío
# ----------------------------------------------------------------------


def _send_text(transport: SimTransport, text: str) -> TransportResult:
    if isinstance(transport, SerialTransport):
        # El byte-stream es orientado a líneas
        result = transport.write(text + "\n")
    else:
        result = transport.write_raw(text)
    if result.success:
        logger.info("[SIM] Sent: %s", text)
    else:
        logger.error("[SIM] Send failed: %s", result.error)
    return result


def send_raw_amplitude(transport: SimTransport, amplitude: Optional[float] = None) -> TransportResult:
    if amplitude is None:
        amplitude = random_amplitude()
    return _send_text(transport, encode_value(amplitude, PRECISION))


def send_multiple_amplitudes(transport: SimTransport, count: int = 5) -> TransportResult:
    return _send_text(transport, multiple_amplitudes(count))


def send_dual_waveform(transport: SimTransport) -> TransportResult:
    return _send_text(transport, dual_waveform_frame())


def send_triple_waveform(transport: SimTransport) -> TransportResult:
    return _send_text(transport, triple_waveform_frame())


def send_earthquake_data(
    transport: SimTransport, payload: Optional[Dict[str, Any]] = None
) -> TransportResult:
    """Envelope estructurado. En push va por write(), en serie como línea JSON."""
    payload = payload if payload is not None else earthquake_payload()
    if isinstance(transport, PushTransport):
        result = transport.write(payload)
        if not result.success:
            logger.error("[SIM] Send failed: %s", result.error)
        return result
    return _send_text(transport, encode_envelope(payload))


SENDERS = {
    "single": send_raw_amplitude,
    "multiple": send_multiple_amplitudes,
    "dual": send_dual_waveform,
    "triple": send_triple_waveform,
    "envelope": send_earthquake_data,
}

"""Encoder: inverso del decoder, para tráfico simulado y de prueba.

Orden fijo: T…H…V…,X…,Y…,Z…
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import orjson

from ..domain.frame import FrameMetadata
from ..domain.sample import Channel
from .envelope import EARTHQUAKE_DATA, build_envelope
from .tokenizer import SEPARATOR

CHANNEL_ORDER = (Channel.X, Channel.Y, Channel.Z)


def encode_value(value: float, precision: Optional[int] = None) -> str:
    """repr() es round-trip exacto; precision fija decimales (ej. 2 → '3.14')."""
    if precision is not None:
        return f"{value:.{precision}f}"
    return repr(float(value))


def encode_values(values: Iterable[float], precision: Optional[int] = None) -> str:
    return SEPARATOR.join(encode_value(v, precision) for v in values)


def encode_prefix(metadata: FrameMetadata) -> str:
    """Siempre las tres letras en orden; un campo ausente queda vacío (T25HV90).

    Raises:
        ValueError: valores negativos (el prefijo solo admite dígitos)
    """
    parts = []
    for letter, value in (
        ("T", metadata.temperature),
        ("H", metadata.humidity),
        ("V", metadata.voltage),
    ):
        if value is None:
            parts.append(letter)
            continue
        if value < 0:
            raise ValueError(f"prefix field {letter} must be non-negative, got {value}")
        parts.append(f"{letter}{int(value)}")
    return "".join(parts)


def encode_frame(
    channels: Mapping[Channel, Sequence[float]],
    metadata: Optional[FrameMetadata] = None,
    precision: Optional[int] = None,
) -> str:
    """Codifica uno o más canales con prefijo opcional.

    Args:
        channels: {Channel.X: [...], Channel.Y: [...]} o {Channel.UNLABELED: [...]}
        metadata: prefijo T/H/V
        precision: decimales fijos (None = repr)

    Raises:
        ValueError: mezcla de UNLABELED con X/Y/Z, Y/Z sin X, canal vacío
            o prefijo con valores negativos
    """
    if not channels:
        raise ValueError("at least one channel is required")

    parts = []
    if metadata is not None and not metadata.is_empty:
        parts.append(encode_prefix(metadata))

    if Channel.UNLABELED in channels:
        if len(channels) > 1:
            raise ValueError("UNLABELED channel cannot be combined with X/Y/Z")
        values = channels[Channel.UNLABELED]
        if not values:
            raise ValueError("channel UNLABELED is empty")
        parts.append(encode_values(values, precision))
        return SEPARATOR.join(parts)

    if Channel.X not in channels:
        raise ValueError("Y/Z channels require an X channel")

    for channel in CHANNEL_ORDER:
        if channel not in channels:
            continue
        values = channels[channel]
        if not values:
            raise ValueError(f"channel {channel.value} is empty")
        parts.append(channel.value + encode_values(values, precision))

    return SEPARATOR.join(parts)


def encode_envelope(payload: Dict[str, Any], kind: str = EARTHQUAKE_DATA) -> str:
    """Serializa el envelope JSON {type, payload}."""
    return orjson.dumps(build_envelope(payload, kind)).decode("utf-8")

"""Decoder de unidades de texto del protocolo sísmico.

Convierte una unidad cruda (una línea del puerto serie o un mensaje del
transporte push) en un DecodeResult. No tiene estado: el buffering de
líneas parciales vive en el pipeline.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

import orjson
from pydantic import ValidationError

from ..domain.frame import (
    BareValue,
    ChannelPayload,
    DecodeResult,
    Envelope,
    Ignored,
    MultiChannel,
    NoData,
)
from ..errors import MalformedEnvelopeError
from .envelope import EARTHQUAKE_DATA, EarthquakePayload
from .tokenizer import SEPARATOR, FrameTokenizer

logger = logging.getLogger(__name__)


def parse_number(token: str) -> Optional[float]:
    """Convierte un token a float. None si no tiene forma numérica válida.

    Rechaza NaN/inf y los separadores '_' que float() acepta.
    """
    token = token.strip()
    if not token or "_" in token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_values(tokens: List[str]) -> List[float]:
    """Parsea cada token de forma independiente, descartando los inválidos."""
    values: List[float] = []
    for token in tokens:
        if not token:
            continue
        value = parse_number(token)
        if value is None:
            logger.debug("[DECODER] Dropped non-numeric token %r", token)
            continue
        values.append(value)
    return values


class FrameDecoder:
    """Decodifica una unidad de texto a su variante de frame.

    Raises:
        MalformedEnvelopeError: JSON inválido o payload que no valida
        OrphanChannelMarkerError: Y/Z sin X previo
        MalformedPrefixError: primer campo T/H/V que no es un prefijo válido
    """

    def __init__(self, tokenizer: Optional[FrameTokenizer] = None):
        self._tokenizer = tokenizer or FrameTokenizer()

    def decode(self, text: str) -> DecodeResult:
        unit = text.strip()
        if not unit:
            return NoData("empty unit")

        if unit[0] in ("{", "["):
            return self._decode_json(unit)

        if SEPARATOR not in unit:
            value = parse_number(unit)
            if value is None:
                return NoData(f"non-numeric value: {unit[:40]!r}")
            return BareValue(value)

        tokens = self._tokenizer.tokenize(unit)
        channels = [
            ChannelPayload(channel=channel, values=parse_values(raw))
            for channel, raw in tokens.channels
        ]
        frame = MultiChannel(channels=channels, metadata=tokens.metadata)
        if frame.total_samples == 0:
            return NoData()
        return frame

    def _decode_json(self, unit: str) -> DecodeResult:
        try:
            data: Any = orjson.loads(unit)
        except orjson.JSONDecodeError as e:
            raise MalformedEnvelopeError(f"invalid JSON: {e}", raw=unit) from e

        if not isinstance(data, dict):
            return Ignored("JSON array is not an envelope", data)

        kind = data.get("type")
        if kind != EARTHQUAKE_DATA:
            return Ignored(f"unrecognized envelope type: {kind!r}", data)

        payload = data.get("payload")
        if payload is None:
            return Ignored("envelope without payload", data)
        if not isinstance(payload, dict):
            raise MalformedEnvelopeError("envelope payload must be an object", raw=unit)

        try:
            return Envelope(kind=kind, payload=EarthquakePayload(**payload))
        except ValidationError as e:
            raise MalformedEnvelopeError(f"invalid envelope payload: {e}", raw=unit) from e


_default_decoder = FrameDecoder()


def decode_unit(text: str) -> DecodeResult:
    """Atajo con un decoder compartido (sin estado)."""
    return _default_decoder.decode(text)

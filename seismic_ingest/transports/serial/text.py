"""Decodificación de chunks de bytes del puerto serie a texto."""

from __future__ import annotations

import codecs
import re

REPLACEMENT = "?"

# Controles excepto \n (0x0A) y \r (0x0D)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class ChunkDecoder:
    """Decoder UTF-8 incremental tolerante a errores.

    - Un carácter multibyte partido entre dos chunks se reensambla.
    - Bytes inválidos → '?'.
    - Se eliminan los bytes de control salvo \\n y \\r.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def decode(self, data: bytes, final: bool = False) -> str:
        text = self._decoder.decode(data, final)
        return sanitize(text)

    def reset(self) -> None:
        self._decoder.reset()


def sanitize(text: str) -> str:
    text = text.replace("�", REPLACEMENT)
    return _CONTROL_CHARS.sub("", text)

"""Buffer de líneas parciales para transportes de flujo de bytes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_MAX_LINE_LENGTH = 65536

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass
class FeedResult:
    lines: List[str] = field(default_factory=list)
    # Prefijo de la línea descartada por exceder el máximo
    overflow: Optional[str] = None


class LineBuffer:
    """Reensambla chunks de texto en líneas completas.

    Acepta \\n, \\r\\n y \\r como fin de línea. Las líneas vacías se omiten.
    Un \\r\\n partido entre dos chunks no genera una línea vacía extra.
    """

    def __init__(self, max_line_length: int = DEFAULT_MAX_LINE_LENGTH):
        self._max = max_line_length
        self._partial = ""

    def feed(self, text: str) -> FeedResult:
        result = FeedResult()
        if not text:
            return result

        parts = _LINE_BREAK.split(self._partial + text)
        self._partial = parts.pop()
        result.lines = [p for p in parts if p.strip()]

        if len(self._partial) > self._max:
            result.overflow = self._partial[:40]
            self._partial = ""
        return result

    def flush(self) -> Optional[str]:
        """Devuelve y vacía la línea parcial pendiente (fin de stream)."""
        partial, self._partial = self._partial, ""
        return partial if partial.strip() else None

    def clear(self) -> None:
        self._partial = ""

    @property
    def pending(self) -> int:
        return len(self._partial)

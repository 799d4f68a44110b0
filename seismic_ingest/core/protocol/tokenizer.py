"""Tokenizer del protocolo de líneas (máquina de estados).

Gramática de una línea separada por comas:

    [T<int>H<int>V<int>,] ( X<v>,<v>...[,Y<v>,<v>...][,Z<v>,<v>...] | <v>,<v>,... )

Estados: EXPECT_PREFIX → EXPECT_X → IN_X → IN_Y? → IN_Z?
         EXPECT_X → IN_UNLABELED cuando no hay marcador X.

El tokenizer solo separa campos y asigna canales; la conversión numérica
la hace el decoder.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..domain.frame import FrameMetadata
from ..domain.sample import Channel
from ..errors import MalformedPrefixError, OrphanChannelMarkerError

SEPARATOR = ","

# Al menos un grupo de dígitos; los ausentes quedan en None
PREFIX_RE = re.compile(r"T(?P<t>\d+)?(?:H(?P<h>\d+)?)?(?:V(?P<v>\d+)?)?")

_MARKERS = {"X": Channel.X, "Y": Channel.Y, "Z": Channel.Z}

_PREFIX_LETTERS = ("T", "H", "V")


class TokenizerState(Enum):
    EXPECT_PREFIX = "expect_prefix"
    EXPECT_X = "expect_x"
    IN_UNLABELED = "in_unlabeled"
    IN_X = "in_x"
    IN_Y = "in_y"
    IN_Z = "in_z"


# Canal abierto → marcadores que abren un canal posterior
_NEXT = {
    TokenizerState.IN_X: {"Y": TokenizerState.IN_Y, "Z": TokenizerState.IN_Z},
    TokenizerState.IN_Y: {"Z": TokenizerState.IN_Z},
    TokenizerState.IN_Z: {},
}

_OWN_MARKER = {
    TokenizerState.IN_X: "X",
    TokenizerState.IN_Y: "Y",
    TokenizerState.IN_Z: "Z",
}


@dataclass
class FrameTokens:
    """Campos crudos por canal, en orden X, Y, Z (o un único UNLABELED)."""
    metadata: FrameMetadata = field(default_factory=FrameMetadata)
    channels: List[Tuple[Channel, List[str]]] = field(default_factory=list)

    def tokens(self, channel: Channel) -> Optional[List[str]]:
        for ch, toks in self.channels:
            if ch is channel:
                return toks
        return None


def parse_prefix(token: str) -> Optional[FrameMetadata]:
    """Parsea el prefijo T/H/V. Devuelve None si el campo no es un prefijo."""
    m = PREFIX_RE.fullmatch(token)
    if m is None:
        return None
    t, h, v = m.group("t"), m.group("h"), m.group("v")
    if t is None and h is None and v is None:
        return None
    return FrameMetadata(
        temperature=int(t) if t is not None else None,
        humidity=int(h) if h is not None else None,
        voltage=int(v) if v is not None else None,
    )


class FrameTokenizer:
    """Separa una línea en prefijo + canales.

    Raises:
        OrphanChannelMarkerError: si aparece Y/Z sin un X previo
        MalformedPrefixError: si el primer campo empieza por T/H/V pero no
            cumple T<d>H<d>V<d> (ej. "H60V90", "T-5H60V90")
    """

    def tokenize(self, text: str) -> FrameTokens:
        result = FrameTokens()
        state = TokenizerState.EXPECT_PREFIX
        current: List[str] = []

        for raw in text.split(SEPARATOR):
            token = raw.strip()

            if state is TokenizerState.EXPECT_PREFIX:
                state = TokenizerState.EXPECT_X
                metadata = parse_prefix(token)
                if metadata is not None:
                    result.metadata = metadata
                    continue
                if token[:1] in _PREFIX_LETTERS:
                    raise MalformedPrefixError(
                        f"malformed metadata prefix {token!r}", raw=text,
                    )

            if state is TokenizerState.EXPECT_X:
                if not token:
                    continue
                marker = token[0]
                if marker == "X":
                    current = self._open(result, Channel.X, token[1:])
                    state = TokenizerState.IN_X
                elif marker in ("Y", "Z"):
                    raise OrphanChannelMarkerError(
                        f"channel marker {marker!r} without preceding X", raw=text,
                    )
                else:
                    current = self._open(result, Channel.UNLABELED, token)
                    state = TokenizerState.IN_UNLABELED
                continue

            if state is TokenizerState.IN_UNLABELED:
                if token[:1] in ("Y", "Z"):
                    raise OrphanChannelMarkerError(
                        f"channel marker {token[0]!r} without preceding X", raw=text,
                    )
                current.append(token)
                continue

            # IN_X / IN_Y / IN_Z
            marker = token[:1]
            next_state = _NEXT[state].get(marker)
            if next_state is not None:
                current = self._open(result, _MARKERS[marker], token[1:])
                state = next_state
            elif marker and marker == _OWN_MARKER[state]:
                current.append(token[1:].strip())
            else:
                current.append(token)

        return result

    @staticmethod
    def _open(result: FrameTokens, channel: Channel, first: str) -> List[str]:
        tokens = [first.strip()]
        result.channels.append((channel, tokens))
        return tokens

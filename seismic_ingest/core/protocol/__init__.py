"""Protocol layer - Gramática de líneas y envelopes.

- tokenizer.py: máquina de estados prefijo/X/Y/Z
- decoder.py:   texto → DecodeResult
- encoder.py:   canales → texto (simulación/pruebas)
- envelope.py:  envelope JSON del transporte push
"""

from .decoder import FrameDecoder, decode_unit, parse_number
from .encoder import encode_envelope, encode_frame, encode_prefix, encode_value, encode_values
from .envelope import EARTHQUAKE_DATA, EarthquakePayload, build_envelope
from .tokenizer import FrameTokenizer, FrameTokens, parse_prefix

__all__ = [
    "FrameDecoder",
    "decode_unit",
    "parse_number",
    "encode_envelope",
    "encode_frame",
    "encode_prefix",
    "encode_value",
    "encode_values",
    "EARTHQUAKE_DATA",
    "EarthquakePayload",
    "build_envelope",
    "FrameTokenizer",
    "FrameTokens",
    "parse_prefix",
]

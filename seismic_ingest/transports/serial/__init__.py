"""Transporte byte-stream (pyserial)."""

from .options import SerialOptions
from .text import ChunkDecoder
from .transport import SerialReader, SerialTransport, SignalStates

__all__ = ["SerialOptions", "ChunkDecoder", "SerialReader", "SerialTransport", "SignalStates"]

"""Seismic ingest - decodificación y fan-out de datos de sensores sísmicos."""

__version__ = "0.1.0"

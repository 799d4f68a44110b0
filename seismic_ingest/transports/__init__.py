"""Transportes de ingesta: push (broker) y byte-stream (serie)."""

from .base import ReadResult, StreamReader, Transport, TransportResult, TransportState

__all__ = ["ReadResult", "StreamReader", "Transport", "TransportResult", "TransportState"]

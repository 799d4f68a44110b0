"""Transporte push (paho-mqtt)."""

from .transport import PushConfig, PushTransport

__all__ = ["PushConfig", "PushTransport"]

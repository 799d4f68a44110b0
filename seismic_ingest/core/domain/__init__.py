"""Domain layer - Modelos de muestra y frame."""

from .sample import Channel, Sample
from .frame import (
    BareValue,
    ChannelPayload,
    DecodeResult,
    Envelope,
    FrameMetadata,
    Ignored,
    MultiChannel,
    NoData,
)

__all__ = [
    "Channel",
    "Sample",
    "BareValue",
    "ChannelPayload",
    "DecodeResult",
    "Envelope",
    "FrameMetadata",
    "Ignored",
    "MultiChannel",
    "NoData",
]

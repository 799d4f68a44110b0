"""Pipeline - decode, timestamps y fan-out por transporte."""

from .dispatcher import PushDispatcher
from .frame_processor import FrameProcessor, ProcessOutcome, ProcessResult
from .line_buffer import LineBuffer
from .stream_decoder import ReadLoopError, StreamDecoder

__all__ = [
    "PushDispatcher",
    "FrameProcessor",
    "ProcessOutcome",
    "ProcessResult",
    "LineBuffer",
    "ReadLoopError",
    "StreamDecoder",
]

"""Procesador de frames: decode → timestamps → fan-out.

Una instancia por transporte. El lock interno garantiza un único
decode+fan-out en vuelo y orden estricto de llegada.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..domain.frame import BareValue, Envelope, Ignored, MultiChannel, NoData
from ..domain.sample import Channel, Sample
from ..errors import FrameError
from ..monitoring.metrics import FRAMES_PROCESSED, SAMPLES_DELIVERED
from ..monitoring.stats import Stats
from ..protocol.decoder import FrameDecoder
from ..subscriptions.registry import SubscriptionRegistry
from ..timing.synthesizer import TimestampSynthesizer, utc_now

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception, str], None]


class ProcessOutcome(Enum):
    DELIVERED = "delivered"
    NO_DATA = "no_data"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass
class ProcessResult:
    outcome: ProcessOutcome
    samples: int = 0
    error: Optional[Exception] = None


class FrameProcessor:
    """Procesa unidades de texto de un transporte y entrega los lotes.

    Responsabilidades:
    - Decodificar con la gramática
    - Sintetizar timestamps por canal
    - Construir metadata de cada muestra
    - Entregar al registro de suscriptores
    - Reportar errores de frame sin cortar el flujo
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        source: str = "external",
        synthesizer: Optional[TimestampSynthesizer] = None,
        decoder: Optional[FrameDecoder] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._registry = registry
        self._source = source
        self._synthesizer = synthesizer or TimestampSynthesizer()
        self._decoder = decoder or FrameDecoder()
        self._on_error = on_error
        self._lock = threading.Lock()
        self._stats = Stats()

    @property
    def source(self) -> str:
        return self._source

    @property
    def stats(self) -> Stats:
        return self._stats

    def set_error_callback(self, on_error: Optional[ErrorCallback]) -> None:
        self._on_error = on_error

    def process(self, text: str, arrival: Optional[datetime] = None) -> ProcessResult:
        """Procesa una unidad completa (una línea o un mensaje push)."""
        with self._lock:
            self._stats.received += 1
            self._stats.last_message_at = time.time()
            if arrival is None:
                arrival = utc_now()

            try:
                result = self._decode_and_deliver(text, arrival)
            except FrameError as e:
                result = ProcessResult(ProcessOutcome.ERROR, error=e)
                logger.warning("[DECODER] Frame discarded (%s): %s", self._source, e)
                self._report(e, text)
            except Exception as e:
                result = ProcessResult(ProcessOutcome.ERROR, error=e)
                logger.exception("[DECODER] Processing error (%s): %s", self._source, e)
                self._report(e, text)

            self._count(result)
            return result

    def _decode_and_deliver(self, text: str, arrival: datetime) -> ProcessResult:
        frame = self._decoder.decode(text)

        if isinstance(frame, MultiChannel):
            samples = self._build_batch(frame, arrival)
            self._registry.deliver(samples)
            return ProcessResult(ProcessOutcome.DELIVERED, samples=len(samples))

        if isinstance(frame, BareValue):
            sample = Sample(
                amplitude=frame.value,
                timestamp=arrival,
                channel=Channel.UNLABELED,
                metadata=self._base_metadata(0, 1, data_type="single"),
            )
            self._registry.deliver(sample)
            return ProcessResult(ProcessOutcome.DELIVERED, samples=1)

        if isinstance(frame, Envelope):
            sample = self._envelope_sample(frame, arrival)
            self._registry.deliver(sample)
            return ProcessResult(ProcessOutcome.DELIVERED, samples=1)

        if isinstance(frame, Ignored):
            logger.debug("[DECODER] Ignored unit (%s): %s", self._source, frame.reason)
            return ProcessResult(ProcessOutcome.IGNORED)

        if isinstance(frame, NoData):
            logger.debug("[DECODER] No data (%s): %s", self._source, frame.reason)
            return ProcessResult(ProcessOutcome.NO_DATA)

        raise TypeError(f"unhandled decode result: {type(frame).__name__}")

    def _build_batch(self, frame: MultiChannel, arrival: datetime) -> List[Sample]:
        prefix = frame.metadata.as_dict()
        data_type = frame.data_type
        samples: List[Sample] = []

        for payload in frame.channels:
            stamped = self._synthesizer.stamp(payload.values, arrival)
            size = len(stamped)
            for index, (value, ts) in enumerate(stamped):
                metadata = self._base_metadata(index, size, data_type=data_type)
                if payload.channel is not Channel.UNLABELED:
                    metadata["waveformType"] = payload.channel.value
                metadata.update(prefix)
                samples.append(Sample(
                    amplitude=value,
                    timestamp=ts,
                    channel=payload.channel,
                    metadata=metadata,
                ))
        return samples

    def _envelope_sample(self, frame: Envelope, arrival: datetime) -> Sample:
        payload = frame.payload
        metadata: Dict[str, Any] = dict(payload.metadata)
        metadata.update(self._base_metadata(0, 1, data_type="envelope"))
        return Sample(
            amplitude=payload.amplitude,
            timestamp=payload.timestamp or arrival,
            channel=Channel.UNLABELED,
            metadata=metadata,
        )

    def _base_metadata(self, index: int, size: int, data_type: Optional[str] = None) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "source": self._source,
            "raw": True,
            "batchIndex": index,
            "batchSize": size,
        }
        if data_type:
            metadata["dataType"] = data_type
        return metadata

    def _report(self, error: Exception, raw: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error, raw)
        except Exception as e:
            logger.exception("[DECODER] Error callback failed: %s", e)

    def _count(self, result: ProcessResult) -> None:
        outcome = result.outcome
        if outcome is ProcessOutcome.DELIVERED:
            self._stats.delivered += 1
            self._stats.samples += result.samples
        elif outcome is ProcessOutcome.NO_DATA:
            self._stats.no_data += 1
        elif outcome is ProcessOutcome.IGNORED:
            self._stats.ignored += 1
        else:
            self._stats.failed += 1
        FRAMES_PROCESSED.labels(source=self._source, result=outcome.value).inc()
        if result.samples:
            SAMPLES_DELIVERED.labels(source=self._source).inc(result.samples)

        if self._stats.delivered and self._stats.delivered % 100 == 0 and outcome is ProcessOutcome.DELIVERED:
            logger.info("[DECODER] %s %s", self._source, self._stats)

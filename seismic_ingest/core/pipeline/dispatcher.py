"""Dispatcher push: desacopla el callback de paho del decode+fan-out.

El hilo de red de paho solo encola (~0.01ms) y vuelve; un único worker
consume la cola en orden de llegada, así el orden de frames por
transporte se mantiene. Cola acotada: si se llena, la unidad se descarta
y se cuenta.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Optional, Tuple

from ..monitoring.metrics import DISPATCH_DROPPED
from ..timing.synthesizer import utc_now
from .frame_processor import FrameProcessor

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class PushDispatcher:
    """Queue + un worker delante de un FrameProcessor."""

    def __init__(self, processor: FrameProcessor, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self._processor = processor
        self._queue: "queue.Queue[Tuple[str, datetime]]" = queue.Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._processed = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        """Arranca el worker."""
        if self._worker is not None:
            return
        self._stop_event.clear()
        self._worker = threading.Thread(
            target=self._worker_loop,
            daemon=True,
            name=f"dispatch-{self._processor.source}",
        )
        self._worker.start()
        logger.info("[DISPATCH] Started queue_max=%d", self._queue.maxsize)

    def stop(self, drain: bool = True) -> None:
        """Detiene el worker. Con drain=True procesa lo pendiente antes."""
        if self._worker is None:
            return
        if drain:
            self._queue.join()
        self._stop_event.set()
        self._worker.join(timeout=5.0)
        self._worker = None
        logger.info("[DISPATCH] Stopped. %s", self.metrics)

    def enqueue(self, text: str) -> bool:
        """Encola una unidad con su instante de llegada. False si la cola está llena."""
        try:
            self._queue.put_nowait((text, utc_now()))
            with self._lock:
                self._enqueued += 1
            return True
        except queue.Full:
            with self._lock:
                self._dropped += 1
            DISPATCH_DROPPED.labels(source=self._processor.source).inc()
            logger.warning("[DISPATCH] Queue full, dropped unit (%s)", self._processor.source)
            return False

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                text, arrival = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                self._processor.process(text, arrival)
                with self._lock:
                    self._processed += 1
            finally:
                self._queue.task_done()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "processed": self._processed,
            }

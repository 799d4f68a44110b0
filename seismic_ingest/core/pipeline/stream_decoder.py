"""Stream decoder: bucle de lectura para transportes de flujo de bytes.

Corre en un hilo dedicado para que el llamador nunca se bloquee esperando
al hardware. Mientras el transporte está en STREAMING:

    read() → LineBuffer → FrameProcessor.process(line) por cada línea

Termina por fin de stream, error de lectura o cancelación cooperativa
(se observa en el siguiente límite de lectura). El reader se libera en
todas las salidas, exactamente una vez.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ...transports.base import StreamReader
from ..errors import IngestError, LineTooLongError
from .frame_processor import FrameProcessor
from .line_buffer import DEFAULT_MAX_LINE_LENGTH, LineBuffer

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception, str], None]


class ReadLoopError(IngestError):
    """Error de lectura a nivel de transporte que termina el bucle."""


class StreamDecoder:
    """Dueño del bucle de lectura de un StreamReader."""

    def __init__(
        self,
        reader: StreamReader,
        processor: FrameProcessor,
        on_error: Optional[ErrorCallback] = None,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        name: str = "serial-reader",
    ):
        self._reader = reader
        self._processor = processor
        self._on_error = on_error
        self._buffer = LineBuffer(max_line_length)
        self._name = name
        self._cancel = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._chunks = 0
        self._lines = 0
        self._exit_reason: Optional[str] = None

    def start(self) -> bool:
        """Arranca el hilo de lectura. False si ya se arrancó antes."""
        with self._lock:
            if self._thread is not None or self._cancel.is_set():
                return False
            self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
            self._thread.start()
        logger.info("[DECODER] Read loop started (%s)", self._name)
        return True

    def cancel(self) -> None:
        """Pide la parada del bucle. Idempotente, también tras el fin natural.

        Sin hilo arrancado no hay quien libere el reader: se libera aquí.
        """
        with self._lock:
            if self._cancel.is_set():
                return
            self._cancel.set()
            started = self._thread is not None
        self._reader.cancel()
        if not started:
            self._exit_reason = "cancelled"
            self._reader.release()
            self._stopped.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Espera a que el bucle termine. True si terminó."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        try:
            while not self._cancel.is_set():
                result = self._reader.read()

                if result.text:
                    self._chunks += 1
                    self._handle_text(result.text)

                if result.error:
                    self._exit_reason = "error"
                    logger.error("[DECODER] Read error (%s): %s", self._name, result.error)
                    self._report(ReadLoopError(result.error), "")
                    break

                if result.done:
                    if not self._cancel.is_set():
                        self._exit_reason = "end_of_stream"
                        self._flush()
                    break
        except Exception as e:
            self._exit_reason = "error"
            logger.exception("[DECODER] Read loop crashed (%s): %s", self._name, e)
            self._report(e, "")
        finally:
            if self._exit_reason is None:
                self._exit_reason = "cancelled"
                self._buffer.clear()
            self._reader.release()
            self._stopped.set()
            logger.info(
                "[DECODER] Read loop stopped (%s): reason=%s chunks=%d lines=%d",
                self._name, self._exit_reason, self._chunks, self._lines,
            )

    def _handle_text(self, text: str) -> None:
        fed = self._buffer.feed(text)
        for line in fed.lines:
            self._lines += 1
            self._processor.process(line)
        if fed.overflow is not None:
            error = LineTooLongError("partial line exceeded buffer limit", raw=fed.overflow)
            logger.warning("[DECODER] %s (%s)", error, self._name)
            self._report(error, fed.overflow)

    def _flush(self) -> None:
        tail = self._buffer.flush()
        if tail is not None:
            self._lines += 1
            self._processor.process(tail)

    def _report(self, error: Exception, raw: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error, raw)
        except Exception as e:
            logger.exception("[DECODER] Error callback failed: %s", e)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._stopped.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def exit_reason(self) -> Optional[str]:
        return self._exit_reason

    @property
    def stats(self) -> dict:
        return {
            "running": self.is_running,
            "chunks": self._chunks,
            "lines": self._lines,
            "pending_bytes": self._buffer.pending,
            "exit_reason": self._exit_reason,
        }

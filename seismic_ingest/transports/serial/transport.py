"""Serial Transport - Byte-stream sobre pyserial.

Un solo puerto por transporte y un solo lector activo a la vez. El
lector es un handle exclusivo: mientras existe, el transporte está en
STREAMING y no se entrega otro. close() cancela el lector, espera a que
el loop lo libere y después cierra el puerto.

Si el lector termina por un error de lectura o porque el puerto se cerró
por debajo (dispositivo desconectado), al liberarse el transporte pasa a
CLOSED en lugar de volver a OPEN sobre un puerto muerto.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import serial
from pydantic import ValidationError

from ..base import ReadResult, StreamReader, Transport, TransportResult, TransportState
from .options import SerialOptions
from .text import ChunkDecoder

logger = logging.getLogger(__name__)

SerialFactory = Callable[[str], Any]

RELEASE_TIMEOUT = 2.0


def default_serial_factory(port: str) -> "serial.SerialBase":
    """Puerto sin abrir; acepta rutas de dispositivo o URLs (loop://, socket://...)."""
    return serial.serial_for_url(port, do_not_open=True)


@dataclass(frozen=True)
class SignalStates:
    """Estado de las líneas de control (salida rts/dtr, entrada cts/dsr/dcd/ri)."""
    rts: bool
    dtr: bool
    cts: bool
    dsr: bool
    dcd: bool
    ri: bool

    def to_dict(self) -> Dict[str, bool]:
        return {
            "rts": self.rts,
            "dtr": self.dtr,
            "cts": self.cts,
            "dsr": self.dsr,
            "dcd": self.dcd,
            "ri": self.ri,
        }


class SerialReader(StreamReader):
    """Handle de lectura exclusivo sobre el puerto abierto."""

    def __init__(self, transport: "SerialTransport", port: Any, options: SerialOptions):
        self._transport = transport
        self._port = port
        self._options = options
        self._decoder = ChunkDecoder()
        self._cancelled = threading.Event()
        self._released = threading.Event()
        self._lock = threading.Lock()

    def read(self) -> ReadResult:
        if self._cancelled.is_set() or self._released.is_set():
            return ReadResult(done=True)

        try:
            if not self._port.is_open:
                # Puerto cerrado bajo el lector: fin del stream
                self._transport._mark_lost("serial port closed")
                return ReadResult(text=self._decoder.decode(b"", final=True), done=True)
            waiting = self._port.in_waiting
            size = max(1, min(waiting, self._options.buffer_size))
            data = self._port.read(size)
        except Exception as e:
            if self._cancelled.is_set():
                return ReadResult(done=True)
            error = str(e) or e.__class__.__name__
            self._transport._mark_lost(error)
            return ReadResult(done=True, error=error)

        if not data:
            return ReadResult()

        self._transport._count_read(len(data))
        return ReadResult(text=self._decoder.decode(data))

    def cancel(self) -> None:
        self._cancelled.set()

    def release(self) -> bool:
        with self._lock:
            if self._released.is_set():
                return False
            self._released.set()
        self._transport._release_reader(self)
        return True

    def wait_released(self, timeout: Optional[float] = None) -> bool:
        return self._released.wait(timeout)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def released(self) -> bool:
        return self._released.is_set()


class SerialTransport(Transport):
    """Transporte byte-stream para sensores conectados por serie."""

    def __init__(
        self,
        port: str,
        serial_factory: Optional[SerialFactory] = None,
        release_timeout: float = RELEASE_TIMEOUT,
    ):
        self._port_name = port
        self._factory = serial_factory or default_serial_factory
        self._release_timeout = release_timeout

        self._serial: Optional[Any] = None
        self._options: Optional[SerialOptions] = None
        self._reader: Optional[SerialReader] = None
        self._state = TransportState.IDLE
        self._lost: Optional[str] = None

        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()

        self._bytes_read = 0
        self._bytes_written = 0
        self._errors = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(
        self, options: Union[None, SerialOptions, Mapping[str, Any]] = None
    ) -> TransportResult:
        """Abre el puerto con las opciones dadas (o las de por defecto)."""
        with self._state_lock:
            if self._state is TransportState.CLOSED:
                return TransportResult.fail("transport closed")
            if self._state is not TransportState.IDLE:
                return TransportResult.fail("serial port already open")

            try:
                opts = SerialOptions.from_any(options)
            except (ValidationError, TypeError) as e:
                self._errors += 1
                logger.error("[SERIAL] Unsupported options for %s: %s", self._port_name, e)
                return TransportResult.fail(f"unsupported serial options: {e}")

            try:
                port = self._factory(self._port_name)
                opts.apply(port)
                port.open()
            except Exception as e:
                self._errors += 1
                logger.error("[SERIAL] Failed to open %s: %s", self._port_name, e)
                return TransportResult.fail(str(e) or "failed to open serial port")

            self._serial = port
            self._options = opts
            self._state = TransportState.OPEN

        # RTS/DTR una sola vez; si falla el puerto sigue abierto
        try:
            port.rts = opts.rts_line_state
            port.dtr = opts.dtr_line_state
        except Exception as e:
            logger.warning("[SERIAL] Could not set RTS/DTR on %s: %s", self._port_name, e)

        logger.info("[SERIAL] Opened %s", opts.summary(self._port_name))
        return TransportResult.ok()

    def get_reader(self) -> Tuple[TransportResult, Optional[SerialReader]]:
        """Entrega el lector exclusivo del puerto."""
        with self._state_lock:
            if self._state is TransportState.STREAMING:
                return TransportResult.fail("serial port is locked by an active reader"), None
            if self._state is not TransportState.OPEN:
                return TransportResult.fail("no open serial port"), None

            reader = SerialReader(self, self._serial, self._options)
            self._reader = reader
            self._state = TransportState.STREAMING
            return TransportResult.ok(), reader

    def close(self) -> TransportResult:
        """Cancela el lector activo, espera su liberación y cierra el puerto."""
        with self._state_lock:
            if not self.is_open:
                return TransportResult.fail("no open serial port")
            reader = self._reader
            port = self._serial

        if reader is not None:
            reader.cancel()
            if not reader.wait_released(self._release_timeout):
                logger.warning("[SERIAL] Reader not released after %.1fs, forcing", self._release_timeout)
                reader.release()

        with self._state_lock:
            if self._state is TransportState.CLOSED:
                # El lector liberó un puerto perdido y ya lo cerró
                logger.info("[SERIAL] Closed %s (port lost: %s)", self._port_name, self._lost)
                return TransportResult.ok()
            self._state = TransportState.CLOSED
            self._serial = None

        try:
            port.close()
        except Exception as e:
            self._errors += 1
            logger.error("[SERIAL] Error closing %s: %s", self._port_name, e)
            return TransportResult.fail(str(e) or "failed to close serial port")

        logger.info("[SERIAL] Closed %s", self._port_name)
        return TransportResult.ok()

    # ------------------------------------------------------------------
    # Write / control lines
    # ------------------------------------------------------------------

    def write(self, data: Union[str, bytes]) -> TransportResult:
        """Escribe y hace flush. Los writers concurrentes se serializan."""
        if isinstance(data, str):
            data = data.encode("utf-8")

        with self._write_lock:
            port = self._serial
            if port is None or not self.is_open:
                return TransportResult.fail("no open serial port")
            try:
                port.write(data)
                port.flush()
            except Exception as e:
                self._errors += 1
                logger.error("[SERIAL] Write failed on %s: %s", self._port_name, e)
                return TransportResult.fail(str(e) or "serial write failed")
            self._bytes_written += len(data)

        return TransportResult.ok()

    def set_signal_states(
        self, rts: Optional[bool] = None, dtr: Optional[bool] = None
    ) -> TransportResult:
        """Fija RTS/DTR manualmente. None deja la línea como está."""
        port = self._serial
        if port is None or not self.is_open:
            return TransportResult.fail("no open serial port")
        try:
            if rts is not None:
                port.rts = rts
            if dtr is not None:
                port.dtr = dtr
        except Exception as e:
            logger.error("[SERIAL] Failed to set signals on %s: %s", self._port_name, e)
            return TransportResult.fail(str(e) or "failed to set signals")
        return TransportResult.ok()

    def get_signal_states(self) -> Tuple[TransportResult, Optional[SignalStates]]:
        port = self._serial
        if port is None or not self.is_open:
            return TransportResult.fail("no open serial port"), None
        try:
            states = SignalStates(
                rts=bool(port.rts),
                dtr=bool(port.dtr),
                cts=bool(port.cts),
                dsr=bool(port.dsr),
                dcd=bool(port.cd),
                ri=bool(port.ri),
            )
        except Exception as e:
            logger.error("[SERIAL] Failed to read signals on %s: %s", self._port_name, e)
            return TransportResult.fail(str(e) or "failed to read signals"), None
        return TransportResult.ok(), states

    # ------------------------------------------------------------------
    # Reader callbacks
    # ------------------------------------------------------------------

    def _release_reader(self, reader: SerialReader) -> None:
        dead_port = None
        with self._state_lock:
            if self._reader is reader:
                self._reader = None
                if self._state is TransportState.STREAMING:
                    if self._lost is not None:
                        # Puerto muerto: no se vuelve a OPEN
                        self._state = TransportState.CLOSED
                        dead_port, self._serial = self._serial, None
                    else:
                        self._state = TransportState.OPEN
        logger.debug("[SERIAL] Reader released on %s", self._port_name)

        if dead_port is not None:
            logger.warning("[SERIAL] %s lost (%s), transport closed", self._port_name, self._lost)
            try:
                dead_port.close()
            except Exception as e:
                logger.debug("[SERIAL] Error closing lost port %s: %s", self._port_name, e)

    def _mark_lost(self, reason: str) -> None:
        with self._state_lock:
            if self._lost is None:
                self._lost = reason
                self._errors += 1

    def _count_read(self, n: int) -> None:
        self._bytes_read += n

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def transport_name(self) -> str:
        return "serial"

    @property
    def port_name(self) -> str:
        return self._port_name

    @property
    def options(self) -> Optional[SerialOptions]:
        return self._options

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "transport": "serial",
            "port": self._port_name,
            "state": self._state.value,
            "bytes_read": self._bytes_read,
            "bytes_written": self._bytes_written,
            "errors": self._errors,
            "lost": self._lost,
        }

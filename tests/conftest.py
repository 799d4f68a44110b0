"""Fixtures compartidas: registry, colector de lotes y fakes de hardware/broker."""

import threading
import time
from datetime import datetime, timezone
from typing import List, Optional
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest
import serial

from seismic_ingest.core.pipeline.frame_processor import FrameProcessor
from seismic_ingest.core.subscriptions.registry import SubscriptionRegistry


ARRIVAL = datetime(2026, 1, 31, 8, 0, 0, tzinfo=timezone.utc)


class Collector:
    """Suscriptor que guarda cada lote recibido."""

    def __init__(self):
        self.batches = []
        self._lock = threading.Lock()

    def __call__(self, batch):
        with self._lock:
            self.batches.append(batch)

    @property
    def samples(self):
        out = []
        for batch in self.batches:
            out.extend(batch if isinstance(batch, list) else [batch])
        return out

    def wait_for(self, count: int, timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.batches) >= count:
                return True
            time.sleep(0.01)
        return len(self.batches) >= count


class FakeSerialPort:
    """Puerto pyserial en memoria.

    chunks: bytes que devolverá read() en orden.
    eof: al agotarse los chunks el puerto se cierra (fin de stream).
    """

    def __init__(self, chunks: Optional[List[bytes]] = None, eof: bool = False):
        self.chunks = list(chunks or [])
        self.eof = eof
        self.is_open = False
        self.written = bytearray()
        self.flushes = 0
        self.close_calls = 0
        self.fail_open: Optional[str] = None
        self.read_error: Optional[str] = None

        # Atributos configurados por SerialOptions.apply
        self.baudrate = None
        self.bytesize = None
        self.stopbits = None
        self.parity = None
        self.rtscts = None
        self.dsrdtr = None
        self.xonxoff = None
        self.timeout = None
        self.write_timeout = None

        self.rts = None
        self.dtr = None
        self.cts = True
        self.dsr = False
        self.ri = False
        self.cd = True

    def open(self):
        if self.fail_open:
            raise serial.SerialException(self.fail_open)
        self.is_open = True

    def close(self):
        self.close_calls += 1
        self.is_open = False

    @property
    def in_waiting(self) -> int:
        return len(self.chunks[0]) if self.chunks else 0

    def read(self, size: int = 1) -> bytes:
        if self.read_error:
            raise serial.SerialException(self.read_error)
        if self.chunks:
            chunk = self.chunks.pop(0)
            data, rest = chunk[:size], chunk[size:]
            if rest:
                self.chunks.insert(0, rest)
            return data
        if self.eof:
            self.is_open = False
            return b""
        time.sleep(0.01)
        return b""

    def write(self, data: bytes) -> int:
        self.written += data
        return len(data)

    def flush(self):
        self.flushes += 1


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


@pytest.fixture
def collector(registry) -> Collector:
    c = Collector()
    registry.subscribe(c, name="collector")
    return c


@pytest.fixture
def errors() -> list:
    return []


@pytest.fixture
def processor(registry, collector, errors) -> FrameProcessor:
    return FrameProcessor(
        registry,
        source="test",
        on_error=lambda e, raw: errors.append((e, raw)),
    )


@pytest.fixture
def mqtt_client():
    """Mock del cliente paho."""
    client = MagicMock()
    client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    return client


@pytest.fixture
def client_factory(mqtt_client):
    return MagicMock(return_value=mqtt_client)

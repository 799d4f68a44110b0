"""Servicio de ingesta: cablea settings, transportes, pipeline y suscriptores.

Flujo push:
  broker → PushTransport (hilo de paho) → PushDispatcher (cola + worker)
  → FrameProcessor("push") → SubscriptionRegistry → callbacks

Flujo serie:
  puerto → SerialReader → StreamDecoder (hilo) → FrameProcessor("serial")
  → SubscriptionRegistry → callbacks

Relay opcional: RedisStreamSubscriber como un suscriptor más.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from .common.config import Settings, get_settings
from .core.monitoring.health import HealthChecker, HealthStatus
from .core.pipeline.dispatcher import PushDispatcher
from .core.pipeline.frame_processor import FrameProcessor
from .core.pipeline.stream_decoder import StreamDecoder
from .core.subscriptions.registry import SubscriberCallback, Subscription, SubscriptionRegistry
from .core.timing.synthesizer import TimestampSynthesizer
from .sinks.redis_stream import RedisConnection, RedisStreamSubscriber
from .transports.push.transport import ClientFactory, PushConfig, PushTransport
from .transports.serial.transport import SerialFactory, SerialTransport

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception, str], None]

STOP_TIMEOUT = 5.0


class IngestService:
    """Servicio de ingesta sísmica multi-transporte."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[SubscriptionRegistry] = None,
        on_error: Optional[ErrorCallback] = None,
        push_client_factory: Optional[ClientFactory] = None,
        serial_factory: Optional[SerialFactory] = None,
        redis_connection: Optional[RedisConnection] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or SubscriptionRegistry()
        self._on_error = on_error
        self._lock = threading.Lock()
        self._running = False
        self._stopping = False

        s = self.settings
        synthesizer = TimestampSynthesizer(timedelta(milliseconds=s.sample_step_ms))

        # Push
        self._push: Optional[PushTransport] = None
        self._dispatcher: Optional[PushDispatcher] = None
        self._push_processor: Optional[FrameProcessor] = None
        if s.push_enabled:
            self._push_processor = FrameProcessor(
                self.registry, source="push", synthesizer=synthesizer, on_error=self._on_frame_error
            )
            self._dispatcher = PushDispatcher(self._push_processor, max_queue_size=s.dispatcher_queue_size)
            self._push = PushTransport(
                config=PushConfig(
                    host=s.push_host,
                    port=s.push_port,
                    transport=s.push_transport,
                    ws_path=s.push_path,
                    topic_in=s.push_topic_in,
                    topic_out=s.push_topic_out,
                    username=s.push_username,
                    password=s.push_password,
                ),
                on_unit=self._dispatcher.enqueue,
                on_disconnect=self._on_push_disconnect,
                on_error=self._on_transport_error,
                client_factory=push_client_factory,
            )

        # Serial
        self._serial: Optional[SerialTransport] = None
        self._serial_processor: Optional[FrameProcessor] = None
        self._decoder: Optional[StreamDecoder] = None
        if s.serial_enabled:
            self._serial_processor = FrameProcessor(
                self.registry, source="serial", synthesizer=synthesizer, on_error=self._on_frame_error
            )
            if s.serial_port:
                self._serial = SerialTransport(s.serial_port, serial_factory=serial_factory)

        # Redis relay
        self._redis: Optional[RedisConnection] = None
        self._relay: Optional[RedisStreamSubscriber] = None
        self._relay_subscription: Optional[Subscription] = None
        if s.redis_enabled:
            self._redis = redis_connection or RedisConnection(s.redis_url)

        self._health = HealthChecker(self._redis)
        self._transport_errors = 0
        self._last_transport_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: SubscriberCallback, name: Optional[str] = None) -> Subscription:
        return self.registry.subscribe(callback, name)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.registry.unsubscribe(subscription)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Arranca los transportes habilitados.

        Returns:
            True si todos los transportes habilitados arrancaron
        """
        with self._lock:
            if self._running:
                return True

            self._start_relay()
            ok = True

            if self.settings.push_enabled:
                ok = self._start_push() and ok
            if self.settings.serial_enabled:
                ok = self._start_serial() and ok

            self._running = True
            logger.info(
                "[SERVICE] Started push=%s serial=%s redis=%s ok=%s",
                self.settings.push_enabled,
                self.settings.serial_enabled,
                self._relay is not None,
                ok,
            )
            return ok

    def stop(self) -> None:
        """Detiene transportes, drena el dispatcher y libera los suscriptores."""
        with self._lock:
            if not self._running:
                return
            self._stopping = True

            if self._decoder is not None:
                self._decoder.cancel()
            if self._serial is not None and self._serial.is_open:
                self._serial.close()
            if self._decoder is not None:
                self._decoder.join(timeout=STOP_TIMEOUT)

            if self._push is not None and self._push.is_open:
                self._push.close()
            if self._dispatcher is not None:
                self._dispatcher.stop(drain=True)

            # Teardown: ningún suscriptor sobrevive al servicio
            dropped = self.registry.unsubscribe_all()
            self._relay_subscription = None
            if self._redis is not None:
                self._redis.disconnect()
            logger.info("[SERVICE] Released %d subscriber(s)", dropped)

            self._running = False
            self._stopping = False
            logger.info("[SERVICE] Stopped. %s", self.stats)

    def _start_relay(self) -> None:
        if self._redis is None:
            return
        if not self._redis.connect():
            logger.warning("[SERVICE] Redis relay disabled: connection failed")
            return
        self._relay = RedisStreamSubscriber(self._redis, self.settings.redis_stream)
        self._relay_subscription = self.registry.subscribe(self._relay, name="redis-relay")

    def _start_push(self) -> bool:
        self._dispatcher.start()
        result = self._push.open()
        if not result.success:
            logger.error("[SERVICE] Push transport failed to open: %s", result.error)
            return False
        return True

    def _start_serial(self) -> bool:
        if self._serial is None:
            logger.error("[SERVICE] Serial transport enabled but SERIAL_PORT is not set")
            return False

        result = self._serial.open(
            {
                "bit_rate": self.settings.serial_baud,
                "rts_line_state": self.settings.serial_rts,
                "dtr_line_state": self.settings.serial_dtr,
            }
        )
        if not result.success:
            logger.error("[SERVICE] Serial transport failed to open: %s", result.error)
            return False

        result, reader = self._serial.get_reader()
        if not result.success:
            logger.error("[SERVICE] Serial reader unavailable: %s", result.error)
            return False

        self._decoder = StreamDecoder(
            reader,
            self._serial_processor,
            on_error=self._on_frame_error,
            max_line_length=self.settings.max_line_length,
        )
        return self._decoder.start()

    # ------------------------------------------------------------------
    # Error callbacks
    # ------------------------------------------------------------------

    def _on_frame_error(self, error: Exception, raw: str) -> None:
        if self._on_error is not None:
            self._on_error(error, raw)

    def _on_push_disconnect(self) -> None:
        """Sin reconexión automática, una caída del push deja el flujo muerto.

        Si tampoco hay lectura serie activa, no queda ningún transporte que
        alimente a los suscriptores y se liberan todos. Con el puerto serie
        leyendo, el registry compartido se conserva.
        """
        if self._stopping:
            # stop() drena el dispatcher antes de liberar los suscriptores
            return
        serial_alive = self._decoder is not None and self._decoder.is_running
        if serial_alive:
            logger.warning("[SERVICE] Push transport disconnected; serial still streaming")
            return
        dropped = self.registry.unsubscribe_all()
        logger.warning("[SERVICE] Push transport disconnected; released %d subscriber(s)", dropped)

    def _on_transport_error(self, message: str) -> None:
        self._transport_errors += 1
        self._last_transport_error = message
        logger.error("[SERVICE] Push transport error: %s", message)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def push_transport(self) -> Optional[PushTransport]:
        return self._push

    @property
    def serial_transport(self) -> Optional[SerialTransport]:
        return self._serial

    @property
    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "running": self._running,
            "subscribers": self.registry.stats,
            "transport_errors": self._transport_errors,
            "last_transport_error": self._last_transport_error,
        }
        if self._push is not None:
            stats["push"] = {
                "transport": self._push.stats,
                "frames": self._push_processor.stats.to_dict(),
                "dispatcher": self._dispatcher.metrics,
            }
        if self._serial_processor is not None:
            stats["serial"] = {
                "transport": self._serial.stats if self._serial is not None else None,
                "frames": self._serial_processor.stats.to_dict(),
                "reader": self._decoder.stats if self._decoder is not None else None,
            }
        if self._relay is not None:
            stats["redis"] = self._relay.stats
        return stats

    def health_check(self) -> HealthStatus:
        processors = [p for p in (self._push_processor, self._serial_processor) if p is not None]
        return self._health.get_status(
            push_enabled=self.settings.push_enabled,
            push_connected=self._push is not None and self._push.is_connected,
            serial_enabled=self.settings.serial_enabled,
            serial_streaming=self._decoder is not None and self._decoder.is_running,
            delivered=sum(p.stats.delivered for p in processors),
            failed=sum(p.stats.failed for p in processors),
            subscribers=len(self.registry),
        )


# Singleton
_service: Optional[IngestService] = None


def get_service() -> Optional[IngestService]:
    """Obtiene el servicio singleton."""
    return _service


def start_service(settings: Optional[Settings] = None) -> bool:
    """Crea e inicia el servicio si no existe."""
    global _service

    if _service is not None:
        return _service.is_running

    _service = IngestService(settings)
    return _service.start()


def stop_service() -> None:
    """Detiene el servicio."""
    global _service

    if _service is not None:
        _service.stop()
        _service = None

"""Push Transport - Conexión bidireccional persistente con el broker (paho-mqtt).

Entrada: cada mensaje del topic de datos es una unidad de texto que se
entrega al handler registrado (normalmente PushDispatcher.enqueue).
Salida: write() publica un envelope estructurado, write_raw() texto de
la gramática tal cual.

Sin auto-reconexión: on_error se dispara en conexiones rechazadas,
fallidas o rotas y la política de reintento queda en manos del caller.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import paho.mqtt.client as mqtt

from ...core.protocol.encoder import encode_envelope
from ...core.protocol.envelope import EARTHQUAKE_DATA
from ..base import Transport, TransportResult, TransportState

logger = logging.getLogger(__name__)

UnitHandler = Callable[[str], Any]
ErrorHandler = Callable[[str], Any]
EventHandler = Callable[[], Any]
ClientFactory = Callable[..., Any]


@dataclass
class PushConfig:
    host: str = "localhost"
    port: int = 5001
    transport: str = "websockets"   # websockets | tcp
    ws_path: str = "/ws"
    topic_in: str = "seismic/+/data"
    topic_out: str = "seismic/ingest/data"
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = "seismic-ingest"
    keepalive: int = 60
    qos: int = 0


def default_client_factory(**kwargs: Any) -> mqtt.Client:
    return mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2, **kwargs)


class PushTransport(Transport):
    """Transporte push: paho-mqtt sobre TCP o WebSocket."""

    def __init__(
        self,
        config: Optional[PushConfig] = None,
        on_unit: Optional[UnitHandler] = None,
        on_connect: Optional[EventHandler] = None,
        on_disconnect: Optional[EventHandler] = None,
        on_error: Optional[ErrorHandler] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.config = config or PushConfig()
        self._on_unit = on_unit
        self._on_connect_cb = on_connect
        self._on_disconnect_cb = on_disconnect
        self._on_error_cb = on_error
        self._client_factory = client_factory or default_client_factory

        self._client: Optional[Any] = None
        self._state = TransportState.IDLE
        self._connected = False
        self._write_lock = threading.Lock()
        self._connection_lock = threading.Lock()

        # Stats
        self._messages_received = 0
        self._messages_published = 0
        self._errors = 0
        self._last_message_at: Optional[float] = None

    def set_unit_handler(self, handler: UnitHandler) -> None:
        """Configura el handler de unidades entrantes."""
        self._on_unit = handler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> TransportResult:
        """Inicia la conexión sin bloquear (connect_async + loop de red)."""
        if self._state is TransportState.CLOSED:
            return TransportResult.fail("transport closed")
        if self._state is not TransportState.IDLE:
            return TransportResult.fail("push transport already open")

        cfg = self.config
        client_id = f"{cfg.client_id}-{uuid.uuid4().hex[:8]}"
        try:
            client = self._client_factory(
                client_id=client_id,
                protocol=mqtt.MQTTv311,
                transport=cfg.transport,
                reconnect_on_failure=False,
            )
            if cfg.transport == "websockets":
                client.ws_set_options(path=cfg.ws_path)
            if cfg.username and cfg.password:
                client.username_pw_set(cfg.username, cfg.password)

            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            client.on_connect_fail = self._on_connect_fail
            client.on_message = self._on_message

            logger.info(
                "[PUSH] Connecting to %s:%d (%s%s)",
                cfg.host,
                cfg.port,
                cfg.transport,
                cfg.ws_path if cfg.transport == "websockets" else "",
            )
            client.connect_async(cfg.host, cfg.port, keepalive=cfg.keepalive)
            client.loop_start()
        except Exception as e:
            self._errors += 1
            logger.error("[PUSH] Connection setup failed: %s", e)
            self._emit_error(f"connection setup failed: {e}")
            return TransportResult.fail(str(e) or "connection setup failed")

        self._client = client
        self._state = TransportState.OPEN
        return TransportResult.ok()

    def close(self) -> TransportResult:
        """Detiene el loop de red y desconecta."""
        if not self.is_open:
            return TransportResult.fail("push transport not open")

        with self._write_lock:
            client = self._client
            self._client = None
            self._state = TransportState.CLOSED

        try:
            client.disconnect()
            client.loop_stop()
        except Exception as e:
            self._errors += 1
            logger.warning("[PUSH] Disconnect error: %s", e)
            return TransportResult.fail(str(e) or "disconnect failed")
        finally:
            # Si paho no llegó a llamar on_disconnect, se notifica aquí
            self._mark_disconnected()

        logger.info("[PUSH] Closed. %s", self.stats)
        return TransportResult.ok()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def write(self, payload: Mapping[str, Any], kind: str = EARTHQUAKE_DATA) -> TransportResult:
        """Publica un envelope {"type": kind, "payload": payload}."""
        try:
            text = encode_envelope(payload, kind)
        except (TypeError, ValueError) as e:
            return TransportResult.fail(f"cannot encode envelope: {e}")
        return self._publish(text)

    def write_raw(self, text: str) -> TransportResult:
        """Publica texto de la gramática sin envolver."""
        return self._publish(text)

    def _publish(self, text: str) -> TransportResult:
        with self._write_lock:
            client = self._client
            if client is None or not self.is_open:
                return TransportResult.fail("push transport not open")
            try:
                info = client.publish(self.config.topic_out, text, qos=self.config.qos)
            except Exception as e:
                self._errors += 1
                logger.error("[PUSH] Publish failed: %s", e)
                return TransportResult.fail(str(e) or "publish failed")

            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                self._errors += 1
                error = mqtt.error_string(info.rc)
                logger.warning("[PUSH] Publish rejected: %s", error)
                return TransportResult.fail(error)

            self._messages_published += 1
        return TransportResult.ok()

    # ------------------------------------------------------------------
    # paho callbacks (hilo de red)
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected = False
            self._errors += 1
            logger.error("[PUSH] Connection refused: %s", reason_code)
            self._emit_error(f"connection refused: {reason_code}")
            return

        with self._connection_lock:
            self._connected = True
        client.subscribe(self.config.topic_in, qos=self.config.qos)
        logger.info("[PUSH] Connected, subscribed to %s", self.config.topic_in)
        if self._on_connect_cb:
            self._on_connect_cb()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if self._state is TransportState.CLOSED:
            logger.info("[PUSH] Disconnected")
        else:
            self._errors += 1
            logger.warning("[PUSH] Connection lost (%s)", reason_code)
            self._emit_error(f"connection lost: {reason_code}")
        self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        """on_disconnect una sola vez por conexión establecida."""
        with self._connection_lock:
            was_connected = self._connected
            self._connected = False
        if not was_connected or self._on_disconnect_cb is None:
            return
        try:
            self._on_disconnect_cb()
        except Exception as e:
            logger.warning("[PUSH] Disconnect callback raised: %s", e)

    def _on_connect_fail(self, client, userdata):
        self._connected = False
        self._errors += 1
        logger.error("[PUSH] Connection failed to %s:%d", self.config.host, self.config.port)
        self._emit_error("connection failed")

    def _on_message(self, client, userdata, msg):
        """Delegación al handler; el hilo de red no hace decode."""
        self._messages_received += 1
        self._last_message_at = time.time()
        payload = msg.payload
        text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else str(payload)
        if self._on_unit:
            self._on_unit(text)

    def _emit_error(self, message: str) -> None:
        if self._on_error_cb is None:
            return
        try:
            self._on_error_cb(message)
        except Exception as e:
            logger.warning("[PUSH] Error callback raised: %s", e)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def transport_name(self) -> str:
        return "push"

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "transport": "push",
            "state": self._state.value,
            "connected": self._connected,
            "messages_received": self._messages_received,
            "messages_published": self._messages_published,
            "errors": self._errors,
            "last_message_at": self._last_message_at,
        }

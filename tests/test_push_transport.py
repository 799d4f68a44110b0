"""Tests del transporte push (paho-mqtt mockeado)."""

import threading
import time
from unittest.mock import MagicMock

import orjson
import paho.mqtt.client as mqtt
import pytest

from seismic_ingest.transports.base import TransportState
from seismic_ingest.transports.push import PushConfig, PushTransport


def reason(failure: bool = False):
    rc = MagicMock()
    rc.is_failure = failure
    rc.__str__ = lambda self: "Not authorized" if failure else "Success"
    return rc


@pytest.fixture
def events():
    return {"units": [], "errors": [], "connected": 0, "disconnected": 0}


@pytest.fixture
def transport(client_factory, events) -> PushTransport:
    def on_connect():
        events["connected"] += 1

    def on_disconnect():
        events["disconnected"] += 1

    return PushTransport(
        config=PushConfig(host="broker.local", port=5001, ws_path="/ws"),
        on_unit=events["units"].append,
        on_connect=on_connect,
        on_disconnect=on_disconnect,
        on_error=events["errors"].append,
        client_factory=client_factory,
    )


# =============================================================================
# CONEXIÓN
# =============================================================================

class TestPushConnection:

    def test_open_is_non_blocking_websocket(self, transport, client_factory, mqtt_client):
        result = transport.open()
        assert result.success
        assert transport.state is TransportState.OPEN

        kwargs = client_factory.call_args.kwargs
        assert kwargs["transport"] == "websockets"
        assert kwargs["reconnect_on_failure"] is False
        mqtt_client.ws_set_options.assert_called_once_with(path="/ws")
        mqtt_client.connect_async.assert_called_once_with("broker.local", 5001, keepalive=60)
        mqtt_client.loop_start.assert_called_once()

    def test_tcp_transport_skips_ws_options(self, client_factory, mqtt_client):
        transport = PushTransport(PushConfig(transport="tcp"), client_factory=client_factory)
        transport.open()
        mqtt_client.ws_set_options.assert_not_called()

    def test_credentials(self, client_factory, mqtt_client):
        transport = PushTransport(PushConfig(username="u", password="p"), client_factory=client_factory)
        transport.open()
        mqtt_client.username_pw_set.assert_called_once_with("u", "p")

    def test_connect_subscribes_to_data_topic(self, transport, mqtt_client, events):
        transport.open()
        transport._on_connect(mqtt_client, None, {}, reason(False))
        assert transport.is_connected
        mqtt_client.subscribe.assert_called_once_with("seismic/+/data", qos=0)
        assert events["connected"] == 1

    def test_refused_connection_fires_error_without_closing(self, transport, mqtt_client, events):
        transport.open()
        transport._on_connect(mqtt_client, None, {}, reason(True))
        assert not transport.is_connected
        assert events["errors"] == ["connection refused: Not authorized"]
        assert transport.state is TransportState.OPEN

    def test_connect_fail(self, transport, mqtt_client, events):
        transport.open()
        transport._on_connect_fail(mqtt_client, None)
        assert events["errors"] == ["connection failed"]

    def test_unexpected_disconnect(self, transport, mqtt_client, events):
        transport.open()
        transport._on_connect(mqtt_client, None, {}, reason(False))
        transport._on_disconnect(mqtt_client, None, {}, reason(True))
        assert not transport.is_connected
        assert events["disconnected"] == 1
        assert len(events["errors"]) == 1

    def test_setup_failure(self, events):
        factory = MagicMock(side_effect=ValueError("bad transport"))
        transport = PushTransport(client_factory=factory, on_error=events["errors"].append)
        result = transport.open()
        assert not result.success
        assert transport.state is TransportState.IDLE
        assert events["errors"]

    def test_close(self, transport, mqtt_client):
        transport.open()
        assert transport.close().success
        mqtt_client.disconnect.assert_called_once()
        mqtt_client.loop_stop.assert_called_once()
        assert transport.state is TransportState.CLOSED
        assert not transport.open().success

    def test_close_fires_disconnect_once(self, transport, mqtt_client, events):
        transport.open()
        transport._on_connect(mqtt_client, None, {}, reason(False))
        transport.close()
        # paho entrega on_disconnect después del cierre
        transport._on_disconnect(mqtt_client, None, {}, reason(False))
        assert events["disconnected"] == 1
        assert events["errors"] == []
        assert not transport.is_connected

    def test_close_with_paho_disconnect_callback(self, transport, mqtt_client, events):
        mqtt_client.disconnect.side_effect = lambda: transport._on_disconnect(
            mqtt_client, None, {}, reason(False)
        )
        transport.open()
        transport._on_connect(mqtt_client, None, {}, reason(False))
        assert transport.close().success
        assert events["disconnected"] == 1
        assert events["errors"] == []

    def test_close_before_connect_does_not_fire_disconnect(self, transport, events):
        transport.open()
        transport.close()
        assert events["disconnected"] == 0


# =============================================================================
# MENSAJES
# =============================================================================

class TestPushMessages:

    def test_message_handed_to_unit_handler(self, transport, mqtt_client, events):
        transport.open()
        transport._on_message(mqtt_client, None, MagicMock(payload=b"X1,2,Y3"))
        assert events["units"] == ["X1,2,Y3"]
        assert transport.stats["messages_received"] == 1

    def test_invalid_utf8_replaced(self, transport, mqtt_client, events):
        transport.open()
        transport._on_message(mqtt_client, None, MagicMock(payload=b"1,\xff2"))
        assert events["units"] == ["1,�2"]


# =============================================================================
# ESCRITURA
# =============================================================================

class TestPushWrite:

    def test_write_publishes_envelope(self, transport, mqtt_client):
        transport.open()
        assert transport.write({"amplitude": 2.5}).success
        topic, text = mqtt_client.publish.call_args.args
        assert topic == "seismic/ingest/data"
        assert orjson.loads(text) == {"type": "earthquake-data", "payload": {"amplitude": 2.5}}

    def test_write_raw(self, transport, mqtt_client):
        transport.open()
        assert transport.write_raw("T25H60V90,X1,2").success
        mqtt_client.publish.assert_called_once_with("seismic/ingest/data", "T25H60V90,X1,2", qos=0)

    def test_publish_rejected(self, transport, mqtt_client):
        mqtt_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)
        transport.open()
        result = transport.write_raw("1")
        assert not result.success
        assert result.error

    def test_write_before_open(self, transport):
        assert not transport.write_raw("1").success

    def test_write_after_close(self, transport):
        transport.open()
        transport.close()
        result = transport.write({"amplitude": 1.0})
        assert not result.success
        assert result.error == "push transport not open"

    def test_concurrent_writers_do_not_overlap(self, transport, mqtt_client):
        in_flight = []
        overlaps = []

        def publish(topic, text, qos=0):
            in_flight.append(text)
            if len(in_flight) > 1:
                overlaps.append(text)
            time.sleep(0.001)
            in_flight.remove(text)
            return MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)

        mqtt_client.publish.side_effect = publish
        transport.open()

        def writer(tag):
            for i in range(20):
                assert transport.write_raw(f"{tag}{i}").success

        threads = [threading.Thread(target=writer, args=(tag,)) for tag in ("X", "Y", "Z")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert overlaps == []
        assert mqtt_client.publish.call_count == 60
        assert transport.stats["messages_published"] == 60

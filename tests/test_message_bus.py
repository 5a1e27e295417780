"""
Tests for MessageBus dispatch and publishing (no broker required).
"""

import threading
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from sillcam.notifications.message_bus import MessageBus


@pytest.fixture
def message_bus():
    bus = MessageBus(domain="127.0.0.1:1883", topic="test/bus", connect_attempts=1)
    bus._client = MagicMock()
    yield bus
    bus.stop()


def _wait(futures):
    return [f.result(timeout=5) for f in futures]


class TestDispatch:
    """Tests for regex bindings."""

    def test_pattern_binding(self, message_bus):
        """TOKEN_.* style bindings match any suffix."""
        received = []
        message_bus.bind("TOKEN_.*", received.append)

        _wait(message_bus.dispatch("TOKEN_42"))
        _wait(message_bus.dispatch("TOKEN_"))

        assert received == ["TOKEN_42", "TOKEN_"]

    def test_exact_binding(self, message_bus):
        """An exact binding ignores longer or shorter messages."""
        received = []
        message_bus.bind("SILLCAM_CAPTURE", received.append)

        assert len(message_bus.dispatch("SILLCAM_CAPTURE")) == 1
        assert message_bus.dispatch("SILLCAM_CAPTURE_NOW") == []
        assert message_bus.dispatch("X SILLCAM_CAPTURE") == []

    def test_no_match(self, message_bus):
        message_bus.bind("TOKEN_.*", MagicMock())
        assert message_bus.dispatch("SILLCAM_PICTURE /tmp/x.jpg") == []

    def test_handlers_run_off_calling_thread(self, message_bus):
        """Handlers run on the bus thread pool."""
        names = []
        message_bus.bind("PING", lambda text: names.append(threading.current_thread().name))

        _wait(message_bus.dispatch("PING"))

        assert names[0].startswith("BusHandler")

    def test_failing_handler_is_contained(self, message_bus):
        """A handler that raises does not stop the other handlers."""
        ok = MagicMock()
        message_bus.bind("PING", MagicMock(side_effect=RuntimeError("boom")))
        message_bus.bind("PING", ok)

        futures = message_bus.dispatch("PING")
        for f in futures:
            f.exception(timeout=5)

        ok.assert_called_once_with("PING")

    def test_on_message_decodes_payload(self, message_bus):
        """MQTT payloads are decoded and stripped before matching."""
        handler = MagicMock()
        message_bus.bind("TOKEN_.*", handler)
        message_bus.dispatch = MagicMock(wraps=message_bus.dispatch)
        msg = MagicMock(payload=b"TOKEN_7\n")

        message_bus._on_message(None, None, msg)

        message_bus.dispatch.assert_called_once_with("TOKEN_7")


class TestConnection:
    """Tests for broker connection handling."""

    def test_domain_parsing(self):
        bus = MessageBus(domain="broker.local:2010")
        assert bus.host == "broker.local"
        assert bus.port == 2010
        bus.stop()

    def test_on_connect_subscribes(self, message_bus):
        client = MagicMock()
        message_bus._on_connect(client, None, None, MagicMock(is_failure=False), None)
        client.subscribe.assert_called_once_with("test/bus")
        assert message_bus.connected

    def test_refused_connection(self, message_bus):
        client = MagicMock()
        message_bus._on_connect(client, None, None, MagicMock(is_failure=True), None)
        client.subscribe.assert_not_called()
        assert not message_bus.connected

    def test_on_disconnect(self, message_bus):
        message_bus._connected = True
        message_bus._on_disconnect(None, None, None, "gone", None)
        assert not message_bus.connected

    def test_start_connects_and_loops(self, message_bus):
        message_bus.start()
        message_bus._client.connect.assert_called_once_with("127.0.0.1", 1883)
        message_bus._client.loop_start.assert_called_once()

    def test_unreachable_broker_falls_back_to_background(self, message_bus):
        """After the retries give up the client keeps reconnecting in the background."""
        message_bus._client.connect.side_effect = ConnectionRefusedError("refused")

        message_bus.start()

        message_bus._client.connect_async.assert_called_once_with("127.0.0.1", 1883)
        message_bus._client.loop_start.assert_called_once()

    def test_connect_retries(self):
        """Transient connect errors are retried."""
        bus = MessageBus(connect_attempts=2)
        bus._client = MagicMock()
        bus._client.connect.side_effect = [OSError("flaky"), None]

        with patch("tenacity.nap.time.sleep"):
            bus.start()

        assert bus._client.connect.call_count == 2
        bus._client.connect_async.assert_not_called()
        bus.stop()


class TestSend:
    """Tests for publishing."""

    def test_send_publishes_on_topic(self, message_bus):
        message_bus._client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)

        assert message_bus.send("SILLCAM_PICTURE /tmp/a.jpg") is True

        message_bus._client.publish.assert_called_once_with(
            "test/bus", "SILLCAM_PICTURE /tmp/a.jpg"
        )
        assert message_bus.get_status()["sent"] == 1

    def test_send_not_connected(self, message_bus):
        message_bus._client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)
        assert message_bus.send("SILLCAM_PICTURE /tmp/a.jpg") is False

    def test_send_error_is_not_raised(self, message_bus):
        message_bus._client.publish.side_effect = ValueError("bad topic")
        assert message_bus.send("x") is False

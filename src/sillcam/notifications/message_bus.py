"""
Message Bus - text messages over MQTT

Clients exchange plain text messages on one topic. Handlers are bound
to regular expressions; every inbound message that fully matches a
binding runs that handler on a thread pool, one task per message.

Provides:
- bind(pattern, handler): subscribe a handler to matching messages
- send(text): publish a message
- Retry logic for the broker connection
"""

import logging
import os
import re
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

import paho.mqtt.client as mqtt
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], None]


class MessageBus:
    """
    Regex-bound text message bus on top of an MQTT broker.

    Inbound handlers never run on the MQTT network thread; a handler that
    raises is logged and does not affect other handlers.
    """

    def __init__(
        self,
        domain: str = "127.0.0.1:1883",
        topic: str = "sillcam/bus",
        app_name: str = "Sill Camera Controller",
        handler_threads: int = 4,
        connect_attempts: int = 5,
    ):
        """
        Args:
            domain: Broker address as host:port
            topic: Topic carrying the text messages
            app_name: Client name announced to the broker
            handler_threads: Size of the handler thread pool
            connect_attempts: Connection attempts before falling back to background reconnect
        """
        host, _, port = domain.rpartition(":")
        self.host = host
        self.port = int(port)
        self.topic = topic
        self.app_name = app_name
        self.connect_attempts = connect_attempts

        self._bindings: list[tuple[re.Pattern, MessageHandler]] = []
        self._executor = ThreadPoolExecutor(
            max_workers=handler_threads,
            thread_name_prefix="BusHandler",
        )
        self._connected = False
        self._started = False
        self._received = 0
        self._sent = 0

        client_id = f"{re.sub(r'[^A-Za-z0-9]+', '-', app_name).strip('-').lower()}-{os.getpid()}"
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

        logger.info(f"MessageBus initialized: {app_name} on {domain} topic={topic}")

    @property
    def connected(self) -> bool:
        return self._connected

    def bind(self, pattern: str, handler: MessageHandler) -> None:
        """Run ``handler(text)`` for every inbound message fully matching ``pattern``."""
        self._bindings.append((re.compile(pattern), handler))
        logger.info(f"Bound /{pattern}/ -> {getattr(handler, '__name__', handler)}")

    def start(self) -> None:
        """Connect to the broker and start the network thread."""
        if self._started:
            logger.warning("MessageBus already started")
            return

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type(OSError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    self._client.connect(self.host, self.port)
        except OSError as e:
            logger.error(
                f"Broker {self.host}:{self.port} unreachable after "
                f"{self.connect_attempts} attempts ({e}); reconnecting in background"
            )
            self._client.connect_async(self.host, self.port)

        self._client.loop_start()
        self._started = True

    def stop(self) -> None:
        """Disconnect and stop dispatching."""
        if self._started:
            self._client.disconnect()
            self._client.loop_stop()
            self._started = False
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("MessageBus stopped")

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error(f"Broker refused connection: {reason_code}")
            return
        self._connected = True
        client.subscribe(self.topic)
        logger.info(f"Connected to broker {self.host}:{self.port}, subscribed to {self.topic}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected = False
        logger.warning(f"Disconnected from broker: {reason_code}")

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage) -> None:
        text = msg.payload.decode("utf-8", errors="replace").strip()
        self.dispatch(text)

    def dispatch(self, text: str) -> list[Future]:
        """Hand ``text`` to every matching handler; returns the scheduled tasks."""
        self._received += 1
        logger.debug(f"Received: {text!r}")

        futures = []
        for pattern, handler in self._bindings:
            if pattern.fullmatch(text):
                future = self._executor.submit(handler, text)
                future.add_done_callback(self._handler_callback)
                futures.append(future)
        return futures

    def _handler_callback(self, future: Future) -> None:
        """Log handler errors (prevents silent failures)."""
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Message handler failed: {error}", exc_info=error)

    def send(self, message: str) -> bool:
        """Publish a text message; failures are logged, not raised."""
        try:
            info = self._client.publish(self.topic, message)
        except ValueError as e:
            logger.error(f"Failed to publish {message!r}: {e}")
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"Message not sent ({mqtt.error_string(info.rc)}): {message}")
            return False

        self._sent += 1
        logger.info(f"Sent: {message}")
        return True

    def get_status(self) -> dict:
        return {
            "domain": f"{self.host}:{self.port}",
            "topic": self.topic,
            "connected": self._connected,
            "bindings": [pattern.pattern for pattern, _ in self._bindings],
            "received": self._received,
            "sent": self._sent,
        }

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from confluent_kafka import KafkaException, Producer

from .errors import PublishError
from .models import PublishResult, format_timestamp
from .settings import Settings

logger = logging.getLogger(__name__)


class Publisher:
    """Publish-only handle to the message broker."""

    async def publish(self, document: Dict[str, Any]) -> PublishResult:
        raise NotImplementedError

    def health(self) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class UnavailablePublisher(Publisher):
    """Stands in when no broker is configured or reachable; every publish fails."""

    def __init__(self, reason: str = "Kafka producer not connected"):
        self.reason = reason

    async def publish(self, document: Dict[str, Any]) -> PublishResult:
        raise PublishError(self.reason)

    def health(self) -> Dict[str, Any]:
        return {"status": "disconnected", "message": self.reason}


class KafkaPublisher(Publisher):
    """
    confluent-kafka producer bridged to asyncio.

    A background thread serves delivery callbacks; each callback resolves the
    future of the publish call that produced the message.
    """

    def __init__(self, producer: Producer, topic: str, loop: asyncio.AbstractEventLoop, publish_timeout: float = 5.0):
        self._producer = producer
        self._topic = topic
        self._loop = loop
        self._publish_timeout = publish_timeout
        self._closed = threading.Event()
        self._poll_thread = threading.Thread(target=self._poll_loop, name="kafka-poll", daemon=True)
        self._poll_thread.start()

    @classmethod
    async def connect(cls, settings: Settings) -> "KafkaPublisher":
        producer = Producer({
            "bootstrap.servers": settings.kafka_bootstrap,
            "client.id": settings.kafka_client_id,
            "retries": settings.kafka_retries,
            "retry.backoff.ms": settings.kafka_retry_backoff_ms,
            "message.timeout.ms": settings.kafka_message_timeout_ms,
        })
        loop = asyncio.get_running_loop()
        failure = None
        try:
            # metadata request doubles as a connectivity check
            await loop.run_in_executor(None, producer.list_topics, None, settings.kafka_connect_timeout_s)
        except KafkaException as e:
            failure = f"Failed to connect to Kafka at {settings.kafka_bootstrap}: {e}"
        if failure:
            # stop librdkafka reconnecting in the background
            producer.flush(0)
            del producer
            raise PublishError(failure)
        logger.info(f"Connected to Kafka brokers={settings.kafka_bootstrap} client_id={settings.kafka_client_id}")
        return cls(producer, settings.telemetry_topic, loop, publish_timeout=settings.kafka_publish_timeout_s)

    def _poll_loop(self):
        while not self._closed.is_set():
            self._producer.poll(0.1)

    def _resolve(self, future: asyncio.Future, result: Optional[PublishResult] = None, error: Optional[Exception] = None):
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    async def publish(self, document: Dict[str, Any]) -> PublishResult:
        if self._closed.is_set():
            raise PublishError("Kafka producer not connected")

        future = self._loop.create_future()

        def ack(err, msg):
            if err:
                self._loop.call_soon_threadsafe(self._resolve, future, None, PublishError(f"Kafka produce error: {err}"))
            else:
                result = PublishResult(partition=msg.partition(), offset=msg.offset())
                self._loop.call_soon_threadsafe(self._resolve, future, result, None)

        message = {
            **document,
            "receivedAt": format_timestamp(datetime.now(timezone.utc)),
        }
        try:
            self._producer.produce(
                self._topic,
                json.dumps(message).encode("utf-8"),
                key=document.get("deviceId") or "unknown",
                on_delivery=ack,
            )
        except (KafkaException, BufferError) as e:
            raise PublishError(str(e)) from e

        try:
            result = await asyncio.wait_for(future, self._publish_timeout)
        except asyncio.TimeoutError:
            raise PublishError(f"No delivery report from Kafka within {self._publish_timeout}s")
        logger.info(
            f"Telemetry message sent to Kafka topic={self._topic} partition={result.partition} "
            f"offset={result.offset} device_id={document.get('deviceId')}"
        )
        return result

    def health(self) -> Dict[str, Any]:
        if self._closed.is_set():
            return {"status": "disconnected", "message": "Kafka producer closed"}
        return {"status": "connected", "message": "Kafka connection healthy", "topic": self._topic}

    def close(self, timeout: float = 10.0) -> None:
        if self._closed.is_set():
            return
        remaining = self._producer.flush(timeout)
        if remaining:
            logger.warning(f"{remaining} telemetry messages still undelivered at shutdown")
        self._closed.set()
        self._poll_thread.join(timeout=1.0)
        logger.info("Disconnected from Kafka")


async def build_publisher(settings: Settings) -> Publisher:
    """Connect to Kafka when brokers are configured, else run in mock mode."""
    if not settings.kafka_bootstrap.strip():
        logger.info("No Kafka brokers configured, running in mock mode")
        return UnavailablePublisher("No Kafka brokers configured")
    try:
        return await KafkaPublisher.connect(settings)
    except PublishError as e:
        logger.warning(f"{e}; continuing without Kafka, telemetry will not be persisted")
        return UnavailablePublisher(str(e))

"""
Durable task queue between the ingestion API and the sprite workers.

Broker configuration comes from the Celery app (CELERY_* settings); the
messages themselves are plain persistent JSON documents on a durable queue,
consumed with manual acknowledgement.
"""
import enum
import logging
import socket
import threading
from typing import Callable

from django.conf import settings
from kombu import Consumer, Exchange, Queue

from timeline_preview.celery import celery_app

from .messages import ProcessingTask

logger = logging.getLogger(__name__)


class Acknowledgement(enum.Enum):
    ACK = "ack"                    # done, remove from the queue
    NACK_REQUEUE = "nack_requeue"  # failed, hand it to a (possibly different) consumer again
    NACK_DROP = "nack_drop"        # can never succeed, discard


Handler = Callable[[dict], Acknowledgement]


class QueueNotConnected(RuntimeError):
    pass


class QueueClient:
    """
    Owns the broker connection of one process.

    Publishing goes through the Celery producer pool, which is safe to share
    between request threads. Consuming uses a dedicated connection/channel
    opened by connect().
    """

    def __init__(
        self,
        queue_name: str,
        *,
        app=None,
        prefetch_count: int = 1,
        poll_seconds: float = 1.0,
        heartbeat: float | None = None,
    ):
        self.app = app or celery_app
        self.queue_name = queue_name
        self.prefetch_count = prefetch_count
        self.poll_seconds = poll_seconds
        self.heartbeat = heartbeat or None
        self.exchange = Exchange(queue_name, type="direct", durable=True)
        self.queue = Queue(queue_name, self.exchange, routing_key=queue_name, durable=True)
        self._connection = None
        self._channel = None
        self._consumer = None

    @classmethod
    def from_settings(cls, **kwargs) -> "QueueClient":
        kwargs.setdefault("prefetch_count", settings.WORKER_PREFETCH_COUNT)
        kwargs.setdefault("poll_seconds", settings.WORKER_POLL_SECONDS)
        kwargs.setdefault("heartbeat", settings.CELERY_BROKER_HEARTBEAT)
        return cls(settings.VIDEO_QUEUE_NAME, **kwargs)

    @property
    def connected(self) -> bool:
        return self._channel is not None

    def connect(self) -> None:
        if self.connected:
            return
        connection = self.app.connection_for_read(heartbeat=self.heartbeat)
        logger.info(
            "Connecting to broker | url=%s queue=%s heartbeat=%s",
            connection.as_uri(), self.queue_name, self.heartbeat,
        )
        connection.connect()
        channel = connection.channel()
        self.queue(channel).declare()
        channel.basic_qos(0, self.prefetch_count, False)
        self._connection = connection
        self._channel = channel
        logger.info("Broker connected | queue=%s prefetch=%s", self.queue_name, self.prefetch_count)

    def publish(self, task: ProcessingTask) -> None:
        body = task.to_message()
        with self.app.producer_or_acquire() as producer:
            producer.publish(
                body,
                exchange=self.exchange,
                routing_key=self.queue_name,
                declare=[self.queue],
                serializer="json",
                delivery_mode=2,  # persistent
                retry=False,
            )
        logger.info("Task published | queue=%s video_id=%s key=%s", self.queue_name, task.video_id, task.key)

    def message_count(self) -> int:
        with self.app.connection_for_read() as connection:
            declared = self.queue(connection.default_channel).queue_declare(passive=True)
            return declared.message_count

    def consume(self, handler: Handler, stop_event: threading.Event) -> None:
        """
        Blocking receive loop. Returns once stop_event is set; broker
        connection errors are logged and re-raised.
        """
        if not self.connected:
            raise QueueNotConnected("connect() must be called before consume()")

        self._consumer = Consumer(
            self._channel,
            queues=[self.queue],
            accept=["json"],
            no_ack=False,
            callbacks=[lambda body, message: self._dispatch(handler, body, message)],
            on_decode_error=self._on_decode_error,
        )
        self._consumer.consume()
        logger.info("Consuming | queue=%s", self.queue_name)

        while not stop_event.is_set():
            try:
                if self.heartbeat:
                    self._connection.heartbeat_check()
                self._connection.drain_events(timeout=self.poll_seconds)
            except socket.timeout:
                continue
            except self._connection.connection_errors:
                logger.exception("Broker connection lost | queue=%s", self.queue_name)
                raise

        logger.info("Consumer stopped | queue=%s", self.queue_name)

    def _dispatch(self, handler: Handler, body, message) -> None:
        redelivered = bool((message.delivery_info or {}).get("redelivered"))
        try:
            decision = handler(body)
        except Exception:
            logger.exception("Task handler raised | redelivered=%s", redelivered)
            decision = Acknowledgement.NACK_REQUEUE
        self._settle(message, decision)

    def _settle(self, message, decision: Acknowledgement) -> None:
        if decision is Acknowledgement.ACK:
            message.ack()
        elif decision is Acknowledgement.NACK_REQUEUE:
            message.requeue()
        else:
            message.reject(requeue=False)
        logger.info("Message settled | decision=%s", decision.value)

    def _on_decode_error(self, message, exc) -> None:
        logger.error("Dropping undecodable message | content_type=%s error=%s", message.content_type, exc)
        message.reject(requeue=False)

    def close_gracefully(self) -> None:
        if self._consumer is not None:
            try:
                self._consumer.cancel()
            except Exception:
                logger.warning("Consumer cancel failed", exc_info=True)
            self._consumer = None
        if self._channel is not None:
            try:
                self._channel.close()
            except Exception:
                logger.warning("Channel close failed", exc_info=True)
            self._channel = None
        if self._connection is not None:
            try:
                self._connection.release()
            except Exception:
                logger.warning("Connection release failed", exc_info=True)
            self._connection = None
        self.app.close()
        logger.info("Broker connection closed | queue=%s", self.queue_name)

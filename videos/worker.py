"""
Worker process: consume ProcessingTasks one at a time and run the sprite
pipeline for each, turning every outcome into an acknowledgement decision.
"""
import logging
import os
import signal
import socket
import threading

from django.conf import settings

from . import lifecycle
from .conf import validate_worker_settings
from .media import FFmpegToolkit
from .messages import MalformedTask, ProcessingTask
from .pipeline import PipelineFailed, SpritePipeline
from .queue import Acknowledgement, QueueClient
from .records import VideoNotFound
from .s3 import ObjectStore

logger = logging.getLogger(__name__)

WORKER_ID = os.getenv("HOSTNAME") or socket.gethostname() or "worker-1"


class TaskHandler:
    def __init__(self, pipeline: SpritePipeline, max_attempts: int = 0):
        self.pipeline = pipeline
        self.max_attempts = max_attempts

    def __call__(self, body: dict) -> Acknowledgement:
        try:
            task = ProcessingTask.from_message(body)
        except MalformedTask as e:
            logger.error("Dropping malformed task | worker=%s error=%s body=%r", WORKER_ID, e, body)
            return Acknowledgement.NACK_DROP

        logger.info("Processing task | worker=%s video_id=%s key=%s", WORKER_ID, task.video_id, task.key)
        try:
            self.pipeline.run(task)
        except VideoNotFound:
            # ingestion rolled the record back after the publish went through
            logger.error("Dropping task for unknown video | video_id=%s", task.video_id)
            return Acknowledgement.NACK_DROP
        except lifecycle.InvalidTransition as e:
            if e.current == lifecycle.Status.COMPLETED:
                logger.info("Duplicate delivery of completed video, acknowledging | video_id=%s", task.video_id)
                return Acknowledgement.ACK
            logger.error("Unexpected state for task | video_id=%s error=%s", task.video_id, e)
            return Acknowledgement.NACK_REQUEUE
        except PipelineFailed as e:
            if self.max_attempts and e.attempt >= self.max_attempts:
                logger.error(
                    "Giving up on video after %s attempts | video_id=%s", e.attempt, task.video_id,
                )
                return Acknowledgement.NACK_DROP
            logger.warning("Task failed, requeueing | video_id=%s attempt=%s", task.video_id, e.attempt)
            return Acknowledgement.NACK_REQUEUE

        logger.info("Task completed successfully | worker=%s video_id=%s", WORKER_ID, task.video_id)
        return Acknowledgement.ACK


def build_handler(store=None) -> TaskHandler:
    options = validate_worker_settings()
    pipeline = SpritePipeline(
        store=store or ObjectStore.from_settings(),
        toolkit=FFmpegToolkit.from_settings(),
        options=options,
        work_root=settings.WORKER_WORK_DIR,
    )
    return TaskHandler(pipeline, max_attempts=settings.WORKER_MAX_DELIVERY_ATTEMPTS)


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle_signal(sig, frame):
        try:
            signal_name = signal.Signals(sig).name
        except ValueError:
            signal_name = str(sig)
        logger.info("Shutdown signal received | signal=%s worker=%s", signal_name, WORKER_ID)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)


def run_worker(stop_event: threading.Event | None = None, *, create_bucket: bool | None = None) -> None:
    """
    Blocks until stop_event is set (SIGTERM/SIGINT) or the broker connection
    drops. The current task always finishes and is settled before exit.
    """
    stop_event = stop_event or threading.Event()
    logger.info("Starting video processing worker | worker=%s", WORKER_ID)

    store = ObjectStore.from_settings()
    handler = build_handler(store)
    store.verify_bucket(create=settings.S3_CREATE_BUCKET if create_bucket is None else create_bucket)

    queue = QueueClient.from_settings()
    queue.connect()
    if threading.current_thread() is threading.main_thread():
        install_signal_handlers(stop_event)

    try:
        queue.consume(handler, stop_event)
    finally:
        queue.close_gracefully()
        logger.info("Worker shutdown complete | worker=%s", WORKER_ID)

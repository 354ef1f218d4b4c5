"""
Queue Worker for Scene Generation Runs

This worker:
- Listens to the Redis generation queue (BRPOP)
- Runs one project's generation at a time through GenerationOrchestrator
- Retries transient failures with exponential backoff
- Mirrors job state into the Redis job hash for API polling
- Supports graceful shutdown (SIGTERM, SIGINT)
- Designed for horizontal scaling (multiple workers)
"""

import asyncio
import logging
import signal
import sys
import time
import traceback
from typing import Optional, Dict, Any

import structlog

from config import settings
from pipeline.errors import (
    PipelineError,
    ErrorCode,
    should_retry,
    get_retry_delay,
)
from pipeline.models import GenerationOptions
from pipeline.orchestrator import create_generation_orchestrator
from redis_client import get_redis_client

logger = structlog.get_logger()


def configure_logging():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.DEBUG else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


class WorkerState:
    """Worker state management for graceful shutdown"""

    def __init__(self):
        self.running = True
        self.current_job_id: Optional[str] = None
        self.shutdown_requested = False

    def request_shutdown(self):
        """Request graceful shutdown"""
        self.shutdown_requested = True
        logger.info("shutdown_requested")

    def is_running(self) -> bool:
        """Check if worker should continue running"""
        return self.running and not self.shutdown_requested

    def stop(self):
        """Stop the worker"""
        self.running = False
        logger.info("worker_stopped")


class GenerationWorker:
    """
    Worker for processing generation jobs from the Redis queue

    A job payload looks like:
        {"job_id": "...", "project_id": "...", "options": {...GenerationOptions}}
    """

    def __init__(
        self,
        worker_id: Optional[str] = None,
        redis_client=None,
        orchestrator=None,
        max_retries: int = 3,
        install_signal_handlers: bool = True
    ):
        """
        Initialize worker

        Args:
            worker_id: Optional worker identifier for multi-worker setups
            redis_client: RedisClient (default: shared client)
            orchestrator: GenerationOrchestrator (default: production wiring)
            max_retries: Attempts per job for transient failures
            install_signal_handlers: Register SIGTERM/SIGINT handlers
        """
        self.worker_id = worker_id or f"worker-{id(self)}"
        self.state = WorkerState()
        self.max_retries = max_retries
        self.redis_client = redis_client or get_redis_client()
        self.orchestrator = orchestrator or create_generation_orchestrator(redis_client=self.redis_client)

        if install_signal_handlers:
            signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
            signal.signal(signal.SIGINT, self._handle_shutdown_signal)

        logger.info(
            "worker_initialized",
            worker_id=self.worker_id,
            max_retries=self.max_retries,
            queue=settings.JOB_QUEUE_NAME
        )

    def _handle_shutdown_signal(self, signum, frame):
        """Handle shutdown signals (SIGTERM, SIGINT)"""
        signal_name = "SIGTERM" if signum == signal.SIGTERM else "SIGINT"
        logger.info(
            "shutdown_signal_received",
            signal=signal_name,
            current_job=self.state.current_job_id
        )
        self.state.request_shutdown()

    def run(self):
        """
        Main worker loop

        Polls the queue until shutdown is requested. A shutdown signal lets
        the current job finish.
        """
        logger.info("worker_started", worker_id=self.worker_id)

        while self.state.is_running():
            try:
                job_data = self.redis_client.dequeue_job()

                if job_data is None:
                    continue

                job_id = job_data.get("job_id")
                if not job_id or not job_data.get("project_id"):
                    logger.error("job_missing_fields", job_data=job_data)
                    continue

                self.state.current_job_id = job_id
                self.process_job(job_id, job_data)
                self.state.current_job_id = None

            except KeyboardInterrupt:
                logger.info("keyboard_interrupt_received")
                break
            except Exception as e:
                logger.error(
                    "worker_loop_error",
                    error=str(e),
                    traceback=traceback.format_exc()
                )
                time.sleep(1)

        self.state.stop()
        logger.info("worker_shutdown_complete", worker_id=self.worker_id)

    def process_job(self, job_id: str, job_data: Dict[str, Any]) -> bool:
        """
        Process a single job with retry logic

        Returns:
            True when the run completed
        """
        project_id = job_data["project_id"]
        log = logger.bind(job_id=job_id, project_id=project_id, worker_id=self.worker_id)
        log.info("job_processing_started")

        attempt = 0
        while attempt < self.max_retries:
            if self.state.shutdown_requested and attempt > 0:
                log.info("job_interrupted_by_shutdown")
                self.redis_client.update_job_status(job_id, "pending", error_message="Worker shutdown during retry")
                self.redis_client.enqueue_job(job_id, {k: v for k, v in job_data.items() if k != "job_id"})
                return False

            try:
                self._execute_job(job_id, job_data)
                log.info("job_completed", attempts=attempt + 1)
                return True

            except Exception as e:
                attempt += 1

                if isinstance(e, PipelineError):
                    pipeline_error = e
                else:
                    pipeline_error = PipelineError(
                        ErrorCode.VIDEO_GENERATION_FAILED,
                        str(e),
                        {"original_exception": type(e).__name__}
                    )

                pipeline_error.log_error()

                if not should_retry(pipeline_error) or attempt >= self.max_retries:
                    log.error(
                        "job_failed",
                        error_code=pipeline_error.code.value,
                        attempts=attempt,
                        retryable=should_retry(pipeline_error)
                    )
                    self._handle_job_failure(job_id, pipeline_error)
                    return False

                delay = get_retry_delay(attempt - 1)
                log.warning(
                    "job_retry_scheduled",
                    attempt=attempt,
                    max_retries=self.max_retries,
                    retry_delay=delay,
                    error_code=pipeline_error.code.value
                )
                self.redis_client.update_job_status(
                    job_id,
                    "retrying",
                    attempt=str(attempt),
                    error_code=pipeline_error.code.value
                )
                time.sleep(delay)

        return False

    def _execute_job(self, job_id: str, job_data: Dict[str, Any]):
        """Run the generation for one job and record the outcome in Redis."""
        self.redis_client.update_job_status(job_id, "processing", worker_id=self.worker_id)

        options = GenerationOptions.model_validate(job_data.get("options") or {})
        outcome = asyncio.run(
            self.orchestrator.run_generation(job_data["project_id"], options)
        )

        self.redis_client.update_job_status(
            job_id,
            "completed",
            final_video_url=outcome.final_video_url or "",
            failed_scenes=",".join(str(n) for n in outcome.failed_scenes or [])
        )

    def _handle_job_failure(self, job_id: str, error: PipelineError):
        """Record a terminal job failure in Redis."""
        self.redis_client.update_job_status(
            job_id,
            "failed",
            error_code=error.code.value,
            error_message=error.get_user_friendly_message()
        )


def main():
    """
    Main entry point for worker

    Usage:
        python worker.py [worker_id]
    """
    configure_logging()
    worker_id = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        worker = GenerationWorker(worker_id=worker_id)
        worker.run()
    except Exception as e:
        logger.error(
            "worker_fatal_error",
            error=str(e),
            traceback=traceback.format_exc()
        )
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Tests for the queue worker's job handling and retry behavior.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pipeline.errors import ProviderTimeoutError, StitchError
from pipeline.models import GenerationOptions, GenerationOutcome
from worker import GenerationWorker

JOB = {"job_id": "j1", "project_id": "p1", "options": {"execution_mode": "parallel", "continuous": True}}


@pytest.fixture
def redis_client():
    return MagicMock()


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    orchestrator.run_generation = AsyncMock(return_value=GenerationOutcome(
        status="completed",
        final_video_url="https://bucket/final.mp4",
        scene_urls=["https://bucket/1.mp4", "https://bucket/3.mp4"],
        failed_scenes=[2],
    ))
    return orchestrator


@pytest.fixture
def worker(redis_client, orchestrator, monkeypatch):
    monkeypatch.setattr("worker.time.sleep", lambda seconds: None)
    return GenerationWorker(
        worker_id="w-test",
        redis_client=redis_client,
        orchestrator=orchestrator,
        install_signal_handlers=False,
    )


def statuses(redis_client):
    return [call.args[1] for call in redis_client.update_job_status.call_args_list]


class TestProcessJob:
    def test_success_records_outcome(self, worker, redis_client, orchestrator):
        assert worker.process_job("j1", JOB) is True

        project_id, options = orchestrator.run_generation.call_args.args
        assert project_id == "p1"
        assert options == GenerationOptions(execution_mode="parallel", continuous=True)

        assert statuses(redis_client) == ["processing", "completed"]
        final_call = redis_client.update_job_status.call_args_list[-1]
        assert final_call.kwargs["final_video_url"] == "https://bucket/final.mp4"
        assert final_call.kwargs["failed_scenes"] == "2"

    def test_transient_error_is_retried(self, worker, redis_client, orchestrator):
        orchestrator.run_generation.side_effect = [
            ProviderTimeoutError("slow"),
            GenerationOutcome(status="completed", final_video_url="https://bucket/final.mp4"),
        ]

        assert worker.process_job("j1", JOB) is True
        assert orchestrator.run_generation.await_count == 2
        assert "retrying" in statuses(redis_client)

    def test_permanent_error_fails_job(self, worker, redis_client, orchestrator):
        orchestrator.run_generation.side_effect = StitchError("codec mismatch")

        assert worker.process_job("j1", JOB) is False
        assert orchestrator.run_generation.await_count == 1

        failed_call = redis_client.update_job_status.call_args_list[-1]
        assert failed_call.args[1] == "failed"
        assert failed_call.kwargs["error_code"] == "STITCH_FAILED"

    def test_retries_exhausted(self, worker, redis_client, orchestrator):
        orchestrator.run_generation.side_effect = ProviderTimeoutError("slow")

        assert worker.process_job("j1", JOB) is False
        assert orchestrator.run_generation.await_count == 3
        assert statuses(redis_client)[-1] == "failed"

    def test_unexpected_error_is_wrapped(self, worker, redis_client, orchestrator):
        orchestrator.run_generation.side_effect = KeyError("boom")

        assert worker.process_job("j1", JOB) is False
        assert redis_client.update_job_status.call_args_list[-1].kwargs["error_code"] == "VIDEO_GENERATION_FAILED"

    def test_shutdown_during_retry_requeues(self, worker, redis_client, orchestrator):
        def fail_and_shutdown(*args, **kwargs):
            worker.state.request_shutdown()
            raise ProviderTimeoutError("slow")

        orchestrator.run_generation.side_effect = fail_and_shutdown

        assert worker.process_job("j1", JOB) is False
        redis_client.enqueue_job.assert_called_once_with(
            "j1", {"project_id": "p1", "options": JOB["options"]}
        )
        assert statuses(redis_client)[-1] == "pending"


class TestRunLoop:
    def test_processes_until_shutdown(self, worker, redis_client, orchestrator):
        jobs = [None, {"job_id": "j2"}, JOB]

        def dequeue(*args, **kwargs):
            if jobs:
                return jobs.pop(0)
            worker.state.request_shutdown()
            return None

        redis_client.dequeue_job.side_effect = dequeue

        worker.run()

        # the job missing project_id is skipped
        assert orchestrator.run_generation.await_count == 1
        assert worker.state.running is False
        assert worker.state.current_job_id is None

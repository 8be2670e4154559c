"""Tests for the background log queue."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from storeagent.infrastructure import cloud_tasks
from storeagent.infrastructure.cloud_tasks import CloudTasksClient
from storeagent.infrastructure.task_queue import AI_LOGS_QUEUE, TaskQueue
from storeagent.settings import settings

WORKER_URL = "https://worker.example.com/"


@pytest.fixture
def worker_url(monkeypatch):
    monkeypatch.setattr(settings, "cloud_tasks_worker_url", WORKER_URL)


class TestTaskQueue:
    """Test cases for TaskQueue."""

    @pytest.mark.asyncio
    async def test_disabled_drops_job(self, worker_url):
        client = MagicMock()
        queue = TaskQueue(client=client, enabled=False)

        assert await queue.enqueue(AI_LOGS_QUEUE, "logInteraction", {"company_id": "c1"}) is None
        client.create_task_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_worker_url_drops_job(self, monkeypatch):
        monkeypatch.setattr(settings, "cloud_tasks_worker_url", None)
        client = MagicMock()
        queue = TaskQueue(client=client, enabled=True)

        assert await queue.enqueue(AI_LOGS_QUEUE, "logInteraction", {}) is None
        client.create_task_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_enqueue(self, worker_url):
        client = MagicMock()
        client.create_task_async = AsyncMock(return_value="tasks/1")
        queue = TaskQueue(client=client, enabled=True)

        name = await queue.enqueue(AI_LOGS_QUEUE, "logFailure", {"company_id": "c1"})

        assert name == "tasks/1"
        client.create_task_async.assert_awaited_once_with(
            AI_LOGS_QUEUE,
            {"job": "logFailure", "data": {"company_id": "c1"}},
            "https://worker.example.com/jobs/ai-logs/logFailure",
        )

    @pytest.mark.asyncio
    async def test_enqueue_errors_swallowed(self, worker_url):
        client = MagicMock()
        client.create_task_async = AsyncMock(side_effect=RuntimeError("quota"))
        queue = TaskQueue(client=client, enabled=True)

        assert await queue.enqueue(AI_LOGS_QUEUE, "logFailure", {}) is None

    @pytest.mark.asyncio
    async def test_enqueue_nowait_and_drain(self, worker_url):
        client = MagicMock()
        client.create_task_async = AsyncMock(return_value="tasks/1")
        queue = TaskQueue(client=client, enabled=True)

        queue.enqueue_nowait(AI_LOGS_QUEUE, "logInteraction", {"company_id": "c1"})
        await queue.drain()
        await asyncio.sleep(0)

        client.create_task_async.assert_awaited_once()
        assert not queue._pending


class TestCloudTasksClient:
    """Test cases for CloudTasksClient."""

    def test_create_task(self, monkeypatch):
        tasks_client = MagicMock()
        tasks_client.queue_path.return_value = "projects/p/locations/l/queues/ai-logs"
        tasks_client.create_task.return_value = MagicMock(name="task")
        tasks_client.create_task.return_value.name = "projects/p/locations/l/queues/ai-logs/tasks/1"
        monkeypatch.setattr(cloud_tasks.tasks_v2, "CloudTasksClient", MagicMock(return_value=tasks_client))

        client = CloudTasksClient()
        name = client.create_task(AI_LOGS_QUEUE, {"message": "مرحبا"}, "https://worker/jobs/ai-logs/x")

        assert name.endswith("/tasks/1")
        request = tasks_client.create_task.call_args.kwargs["request"]
        assert request["parent"] == "projects/p/locations/l/queues/ai-logs"
        body = request["task"]["http_request"]["body"]
        assert json.loads(body.decode()) == {"message": "مرحبا"}
        assert "schedule_time" not in request["task"]

    def test_create_task_with_delay(self, monkeypatch):
        tasks_client = MagicMock()
        monkeypatch.setattr(cloud_tasks.tasks_v2, "CloudTasksClient", MagicMock(return_value=tasks_client))

        CloudTasksClient().create_task(AI_LOGS_QUEUE, {}, "https://worker", delay_seconds=30)

        request = tasks_client.create_task.call_args.kwargs["request"]
        assert "schedule_time" in request["task"]

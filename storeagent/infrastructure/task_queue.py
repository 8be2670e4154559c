"""Fire-and-forget queue for interaction and failure logs."""

import asyncio
import logging
from typing import Any

from storeagent.infrastructure.cloud_tasks import CloudTasksClient
from storeagent.settings import settings

logger = logging.getLogger(__name__)

AI_LOGS_QUEUE = "ai-logs"


class TaskQueue:
    """Enqueues background jobs on Cloud Tasks.

    When Cloud Tasks is disabled the job is only logged. Enqueue failures are
    logged and never reach the caller.
    """

    def __init__(self, client: CloudTasksClient | None = None, enabled: bool | None = None) -> None:
        self.enabled = settings.cloud_tasks_enabled if enabled is None else enabled
        self._client = client
        self._pending: set[asyncio.Task] = set()

    def _get_client(self) -> CloudTasksClient:
        if self._client is None:
            self._client = CloudTasksClient()
        return self._client

    def _job_url(self, queue_name: str, job_name: str) -> str:
        base_url = (settings.cloud_tasks_worker_url or "").rstrip("/")
        return f"{base_url}/jobs/{queue_name}/{job_name}"

    async def enqueue(self, queue_name: str, job_name: str, payload: dict[str, Any]) -> str | None:
        """Enqueue a job.

        Returns:
            Task name, or None if the job was not queued
        """
        if not self.enabled or not settings.cloud_tasks_worker_url:
            logger.info(
                f"Task queue disabled, dropping {queue_name}/{job_name}",
                extra={"queue": queue_name, "job": job_name, "company_id": payload.get("company_id")},
            )
            return None
        try:
            return await self._get_client().create_task_async(
                queue_name, {"job": job_name, "data": payload}, self._job_url(queue_name, job_name)
            )
        except Exception as e:
            logger.error(f"Failed to enqueue {queue_name}/{job_name}: {e}", exc_info=True)
            return None

    def enqueue_nowait(self, queue_name: str, job_name: str, payload: dict[str, Any]) -> None:
        """Schedule ``enqueue`` in the background and return immediately."""
        task = asyncio.create_task(self.enqueue(queue_name, job_name, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background enqueues to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

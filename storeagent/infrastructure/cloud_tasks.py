"""Cloud Tasks client wrapper for async log jobs."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from storeagent.settings import settings


class CloudTasksClient:
    """Cloud Tasks client wrapper for queuing async jobs."""

    def __init__(self) -> None:
        """Initialize Cloud Tasks client."""
        self.client = tasks_v2.CloudTasksClient()
        self.project = settings.gcp_project_id
        self.location = settings.cloud_tasks_location

    def create_task(
        self,
        queue_name: str,
        payload: dict[str, Any],
        url: str,
        delay_seconds: int = 0,
    ) -> str:
        """Create a Cloud Task.

        Args:
            queue_name: Cloud Tasks queue
            payload: Task payload (will be JSON serialized)
            url: Target URL for the task
            delay_seconds: Delay before executing the task

        Returns:
            Task name/path
        """
        task = {
            "http_request": {
                "http_method": tasks_v2.HttpMethod.POST,
                "url": url,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps(payload, ensure_ascii=False, default=str).encode(),
            }
        }

        if delay_seconds > 0:
            schedule_time = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
            timestamp = timestamp_pb2.Timestamp()
            timestamp.FromDatetime(schedule_time)
            task["schedule_time"] = timestamp

        response = self.client.create_task(
            request={
                "parent": self.client.queue_path(self.project, self.location, queue_name),
                "task": task,
            }
        )
        return response.name

    async def create_task_async(
        self,
        queue_name: str,
        payload: dict[str, Any],
        url: str,
        delay_seconds: int = 0,
    ) -> str:
        """Create a Cloud Task without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self.create_task,
            queue_name,
            payload,
            url,
            delay_seconds,
        )

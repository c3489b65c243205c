"""Base task for the periodic order jobs"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog
from celery import Task

from core.logging_config import get_logger
from infrastructure.container import ServiceContainer, build_container
from infrastructure.database import engine

logger = get_logger(__name__)


class BaseTask(Task):
    """Runs one async job per invocation against a fresh service graph.

    Every run gets its own event loop through ``asyncio.run``; the pooled database
    connections belong to that loop, so the engine is disposed before it closes.
    """

    def run_async(self, job: Callable[[ServiceContainer], Awaitable[Any]]) -> Any:
        structlog.contextvars.bind_contextvars(task_id=self.request.id, task_name=self.name)
        try:
            return asyncio.run(self._run(job))
        finally:
            structlog.contextvars.unbind_contextvars("task_id", "task_name")

    async def _run(self, job: Callable[[ServiceContainer], Awaitable[Any]]) -> Any:
        container = build_container()
        try:
            return await job(container)
        finally:
            await container.aclose()
            await engine.dispose()

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            kwargs=kwargs,
            error=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

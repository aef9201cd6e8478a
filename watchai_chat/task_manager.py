"""Lifecycle manager for named asyncio background tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track turn and upload tasks by key so they can be cancelled on teardown."""

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Start ``coro`` as a task registered under ``name``.

        The registration is dropped when the task finishes. A live task with
        the same name is not cancelled; callers pick unique names.
        """
        task = asyncio.create_task(coro, name=name)
        self._named[name] = task
        task.add_done_callback(lambda done, key=name: self._forget(key, done))
        return task

    def get(self, name: str) -> asyncio.Task[Any] | None:
        """Return the named task or ``None`` if not registered."""
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    @property
    def names(self) -> list[str]:
        return list(self._named)

    async def cancel(self, name: str) -> None:
        """Cancel a named task and await its completion."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        LOGGER.debug("task.cancelled", extra={"event": "task.cancelled", "task": name})

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        tasks = list(self._named.values())
        self._named.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            LOGGER.info(
                "task.cancel_all", extra={"event": "task.cancel_all", "count": len(tasks)}
            )

    def _forget(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

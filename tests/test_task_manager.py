"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from watchai_chat.task_manager import TaskManager


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate named task lifecycle management."""

    async def test_spawn_and_cancel_by_name(self) -> None:
        tm = TaskManager()
        cancelled: list[bool] = []

        async def _worker() -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = tm.spawn("my_task", _worker())
        await asyncio.sleep(0)  # Let the task start.
        self.assertIs(tm.get("my_task"), task)
        self.assertTrue(tm.is_running("my_task"))

        await tm.cancel("my_task")
        self.assertTrue(task.done())
        self.assertTrue(cancelled)
        self.assertIsNone(tm.get("my_task"))

    async def test_cancel_nonexistent_name_is_noop(self) -> None:
        tm = TaskManager()
        await tm.cancel("does_not_exist")

    async def test_finished_tasks_self_clean(self) -> None:
        tm = TaskManager()

        async def _quick() -> int:
            return 1

        task = tm.spawn("quick", _quick())
        self.assertEqual(await task, 1)
        await asyncio.sleep(0)  # Let done callbacks run.
        self.assertIsNone(tm.get("quick"))
        self.assertEqual(tm.names, [])

    async def test_cancel_all_cancels_every_task(self) -> None:
        tm = TaskManager()
        results: list[str] = []

        async def _worker(label: str) -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                results.append(label)
                raise

        tm.spawn("upload:a", _worker("a"))
        tm.spawn("active_turn", _worker("turn"))
        await asyncio.sleep(0)
        await tm.cancel_all()
        self.assertEqual(sorted(results), ["a", "turn"])
        self.assertEqual(tm.names, [])


if __name__ == "__main__":
    unittest.main()

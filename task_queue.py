"""
task_queue.py — Strictly serial FIFO runner for async tasks.

Every LLM call made by a pipeline goes through one of these so the
rate-limited endpoint only ever sees one request at a time, while the
preparatory work (reading files, stat calls, manifest lookups) is free
to fan out.

Each `add()` returns a future for that task's own outcome. A failing
task only fails its own future; the drain loop keeps going. That holds
for a task that cancels itself too. Cancelling the drain loop cancels the
running task's future and every one still pending.
"""

from __future__ import annotations
import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Optional

Task = Callable[[], Awaitable[Any]]


class SerialQueue:
    def __init__(self):
        self._pending: deque[tuple[Task, asyncio.Future]] = deque()
        self._running = False
        self._drainer: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, task: Task) -> asyncio.Future:
        """Enqueue `task` and return a future resolved with its result."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((task, future))
        if not self._running:
            self._running = True
            self._drainer = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        try:
            while self._pending:
                task, future = self._pending.popleft()
                try:
                    result = await task()
                except asyncio.CancelledError:
                    future.cancel()
                    if asyncio.current_task().cancelling():
                        raise
                except BaseException as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            self._running = False
            self._drainer = None
            # Only non-empty when the drainer itself was cancelled.
            while self._pending:
                _, future = self._pending.popleft()
                future.cancel()

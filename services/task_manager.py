import asyncio
from typing import Awaitable, Set
from core.logger import logger

class TaskManager:
    """Keeps fire-and-forget tasks referenced until they finish and logs their failures."""
    _instance = None
    _tasks: Set[asyncio.Task] = set()

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(TaskManager, cls).__new__(cls)
        return cls._instance

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        logger.debug("Background task started", task=name)
        task.add_done_callback(self._cleanup_task)
        return task

    def _cleanup_task(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task cancelled", task=task.get_name())
        elif task.exception() is not None:
            logger.error("Background task failed", task=task.get_name(), error=str(task.exception()))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0):
        """Wait for outstanding tasks on shutdown; cancel whatever is left after timeout."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        logger.info("Background tasks drained", finished=len(done), cancelled=len(pending))

task_manager = TaskManager()

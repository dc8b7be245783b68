import asyncio
import logging

logger = logging.getLogger("grillroom.session.controller")


class SessionController:
    def __init__(self):
        self.stop_event = asyncio.Event()
        self.tasks: list[asyncio.Task] = []

    def create_task(self, coro):
        task = asyncio.create_task(coro)
        self.tasks = [item for item in self.tasks if not item.done()]
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self.tasks if not task.done())

    async def stop(self):
        if not self.stop_event.is_set():
            self.stop_event.set()

        for task in self.tasks:
            task.cancel()

        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.warning("session task ended with error: %s", result)
        self.tasks = []

import asyncio
import logging
from datetime import datetime, timezone

UTC = timezone.utc
logger = logging.getLogger("uvicorn")


class Scheduler:
    """
    Minimal in-process interval scheduler.
    Usage:
        sched = Scheduler()
        sched.every(3600, coro, arg1, arg2=...)
        await sched.run_forever()
    """
    def __init__(self, tick: float = 1.0):
        self.jobs = []  # list[(seconds, coro, args, kwargs, last_run)]
        self.tick = tick
        self._running = set()  # live job tasks; asyncio keeps only weak refs

    def every(self, seconds: int, coro, *args, **kwargs):
        self.jobs.append([seconds, coro, args, kwargs, None])

    async def _run(self, coro, args, kwargs):
        try:
            await coro(*args, **kwargs)
        except Exception as e:
            logger.warning(f"[scheduler] {getattr(coro, '__name__', coro)} failed: {e}")

    async def run_forever(self):
        while True:
            now = datetime.now(tz=UTC)
            for job in self.jobs:
                seconds, coro, args, kwargs, last_run = job
                if last_run is None or (now - last_run).total_seconds() >= seconds:
                    task = asyncio.create_task(self._run(coro, args, kwargs))
                    self._running.add(task)
                    task.add_done_callback(self._running.discard)
                    job[4] = now
            await asyncio.sleep(self.tick)

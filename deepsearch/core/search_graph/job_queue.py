"""
Bounded job queue - runs submitted coroutine jobs with a concurrency cap,
a per-job timeout and results collected in submission order.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional
from loguru import logger


Job = Callable[[], Awaitable[Any]]


@dataclass
class JobResult:
    index: int
    success: bool
    value: Any = None
    error: Optional[str] = None


class JobQueue:
    """
    Concurrency-limited batch runner.

    A job that times out or raises is logged and recorded as failed;
    its slot is released and the rest of the batch keeps running.
    """

    def __init__(
        self,
        name: str,
        concurrency: int = 1,
        timeout: float = 10.0,
        delay: float = 0.0,
        show_progress: bool = False,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.name = name
        self.concurrency = concurrency
        self.timeout = timeout
        self.delay = delay
        self.show_progress = show_progress
        self._jobs: List[Job] = []
        self.results: List[JobResult] = []

    def push(self, job: Job):
        self._jobs.append(job)

    def __len__(self) -> int:
        return len(self._jobs)

    async def start(self) -> List[JobResult]:
        """Run every pushed job and return results in submission order."""
        jobs, self._jobs = self._jobs, []
        if not jobs:
            return []

        start_time = time.time()
        semaphore = asyncio.Semaphore(self.concurrency)
        completed = 0

        async def _run(index: int, job: Job) -> JobResult:
            nonlocal completed
            async with semaphore:
                if self.delay:
                    await asyncio.sleep(self.delay)
                try:
                    value = await asyncio.wait_for(job(), timeout=self.timeout)
                    result = JobResult(index=index, success=True, value=value)
                except asyncio.TimeoutError:
                    logger.warning(f"[JobQueue:{self.name}] Job {index} timed out after {self.timeout}s")
                    result = JobResult(index=index, success=False, error="timeout")
                except Exception as e:
                    logger.warning(f"[JobQueue:{self.name}] Job {index} failed: {e}")
                    result = JobResult(index=index, success=False, error=str(e)[:200])

            completed += 1
            if self.show_progress:
                logger.info(f"[JobQueue:{self.name}] Progress {completed}/{len(jobs)}")
            return result

        self.results = list(await asyncio.gather(*[_run(i, job) for i, job in enumerate(jobs)]))

        failed = sum(1 for r in self.results if not r.success)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"[JobQueue:{self.name}] Finished {len(self.results) - failed}/{len(self.results)}, "
            f"failed {failed}, {elapsed_ms:.0f}ms"
        )
        return self.results

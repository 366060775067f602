import asyncio

import pytest

from deepsearch.core.search_graph.job_queue import JobQueue


def test_results_keep_submission_order():
    async def run():
        queue = JobQueue("order", concurrency=3, timeout=1)
        for i, wait in enumerate([0.05, 0.0, 0.02]):
            async def job(i=i, wait=wait):
                await asyncio.sleep(wait)
                return i * 10
            queue.push(job)
        return await queue.start()

    results = asyncio.run(run())
    assert [r.index for r in results] == [0, 1, 2]
    assert [r.value for r in results] == [0, 10, 20]
    assert all(r.success for r in results)


def test_timeout_and_failure_do_not_stop_the_batch():
    async def slow():
        await asyncio.sleep(1)
        return "late"

    async def broken():
        raise ValueError("bad page")

    async def fine():
        return "ok"

    async def run():
        queue = JobQueue("mixed", concurrency=2, timeout=0.05)
        for job in (slow, broken, fine):
            queue.push(job)
        return await queue.start()

    slow_result, broken_result, fine_result = asyncio.run(run())
    assert not slow_result.success and slow_result.error == "timeout"
    assert not broken_result.success and "bad page" in broken_result.error
    assert fine_result.success and fine_result.value == "ok"


def test_concurrency_cap_is_respected():
    active = 0
    peak = 0

    async def job():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    async def run():
        queue = JobQueue("capped", concurrency=2, timeout=1)
        for _ in range(6):
            queue.push(job)
        assert len(queue) == 6
        await queue.start()
        assert len(queue) == 0

    asyncio.run(run())
    assert peak == 2


def test_empty_queue_and_invalid_concurrency():
    assert asyncio.run(JobQueue("empty").start()) == []
    with pytest.raises(ValueError):
        JobQueue("bad", concurrency=0)

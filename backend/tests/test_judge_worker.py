import asyncio

import httpx
import pytest

from portal.models.submission import ContestSubmission
from portal.services.judge_client import JudgeClient
from portal.services.judge_worker import JudgeWorker


class GatedPoller:
    """Poller whose sweep blocks until the test releases it"""

    def __init__(self, processed: int = 1):
        self.calls = 0
        self.processed = processed
        self.release = asyncio.Event()

    async def poll_pending(self):
        self.calls += 1
        await self.release.wait()
        return {"processed_count": self.processed}


class FailingPoller:
    def __init__(self):
        self.calls = 0

    async def poll_pending(self):
        self.calls += 1
        raise RuntimeError("database went away")


@pytest.mark.asyncio
async def test_tick_is_skipped_while_a_sweep_is_in_flight():
    poller = GatedPoller(processed=2)
    worker = JudgeWorker(poller, interval=60)

    assert worker.tick() is True
    await asyncio.sleep(0)
    assert worker.in_flight

    assert worker.tick() is False
    assert worker.tick() is False
    assert poller.calls == 1

    poller.release.set()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert not worker.in_flight
    status = worker.status()
    assert status["processed_count"] == 2
    assert status["skipped_ticks"] == 2
    assert status["last_heartbeat"] > 0

    assert worker.tick() is True
    await asyncio.sleep(0)
    assert poller.calls == 2
    await worker.stop()


@pytest.mark.asyncio
async def test_failed_sweep_clears_in_flight():
    poller = FailingPoller()
    worker = JudgeWorker(poller, interval=60)

    worker.tick()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert not worker.in_flight
    assert worker.tick() is True
    await asyncio.sleep(0)
    assert poller.calls == 2
    await worker.stop()


@pytest.mark.asyncio
async def test_start_runs_first_sweep_and_stop_cancels():
    poller = GatedPoller()
    worker = JudgeWorker(poller, interval=60)

    worker.start()
    worker.start()
    await asyncio.sleep(0.01)

    assert worker.is_running()
    assert poller.calls == 1

    await worker.stop()

    assert not worker.is_running()
    assert not worker.in_flight
    assert worker.status()["running"] is False


@pytest.mark.asyncio
async def test_queue_depth_counts_pending_rows(db, make_contest, participant):
    contest = make_contest()
    for status in ("PENDING", "PENDING", "Accepted"):
        db.add(ContestSubmission(
            contest_id=contest.id,
            problem_idx=0,
            user_id=participant.id,
            language_id=71,
            source_code="src",
            tokens=[],
            status=status,
            result={},
        ))
    db.commit()

    assert JudgeWorker(GatedPoller(), interval=60).queue_depth(db) == 2


@pytest.mark.asyncio
async def test_stop_closes_the_judge_connection_pool():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": {"id": 3}})

    client = JudgeClient(base_url="https://judge.test", transport=httpx.MockTransport(handler))
    await client.get_result("tok-1")
    pool = client._http
    worker = JudgeWorker(GatedPoller(), interval=60, client=client)

    worker.start()
    await asyncio.sleep(0)
    await worker.stop()

    assert pool.is_closed
    assert client._http is None

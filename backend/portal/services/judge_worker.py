"""Background worker driving the reconciliation poller on a fixed cadence."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Optional

from sqlalchemy.orm import Session

from portal.config import settings
from portal.models.submission import ContestSubmission, SubmissionStatus
from portal.services.judge_client import JudgeClient, judge_client
from portal.services.reconciliation_poller import ReconciliationPoller, reconciliation_poller

logger = logging.getLogger(__name__)


class JudgeWorker:
    """Single-flight ticker: a tick that finds a sweep still running is dropped."""

    def __init__(
        self,
        poller: ReconciliationPoller,
        interval: Optional[float] = None,
        client: Optional[JudgeClient] = None,
    ) -> None:
        self.poller = poller
        self.client = client
        self.interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self._task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._heartbeat: float = 0.0
        self._processed_count: int = 0
        self._skipped_ticks: int = 0

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self.is_running():
            return
        self._task = asyncio.get_running_loop().create_task(self._run_loop(), name="judge-worker")
        logger.info("Judge worker started (every %.1fs)", self.interval)

    async def stop(self) -> None:
        for task in (self._task, self._sweep_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._task = None
        self._sweep_task = None
        self._in_flight = False
        if self.client is not None:
            await self.client.aclose()
        logger.info("Judge worker stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "in_flight": self._in_flight,
            "last_heartbeat": self._heartbeat,
            "processed_count": self._processed_count,
            "skipped_ticks": self._skipped_ticks,
        }

    def queue_depth(self, db: Session) -> int:
        return (
            db.query(ContestSubmission)
            .filter(ContestSubmission.status == SubmissionStatus.PENDING.value)
            .count()
        )

    def tick(self) -> bool:
        """Launch a sweep unless one is in flight; returns whether it launched"""
        if self._in_flight:
            self._skipped_ticks += 1
            logger.debug("Previous sweep still running; tick skipped")
            return False
        self._in_flight = True
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep())
        return True

    async def _sweep(self) -> None:
        try:
            outcome = await self.poller.poll_pending()
            self._processed_count += outcome.get("processed_count", 0)
        except Exception as exc:
            logger.exception("Polling job error: %s", exc)
        finally:
            self._heartbeat = time.time()
            self._in_flight = False

    async def _run_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(max(0.1, self.interval))


judge_worker = JudgeWorker(reconciliation_poller, client=judge_client)

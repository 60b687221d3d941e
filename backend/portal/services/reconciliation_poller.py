"""Reconciliation poller - turns finished judge tokens into submission verdicts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from prometheus_client import Counter
from sqlalchemy.orm import Session

from portal.config import settings
from portal.core.database import SessionLocal
from portal.core.exceptions import JudgeError
from portal.models.contest import Contest
from portal.models.submission import ContestSubmission, SubmissionStatus
from portal.schemas.contest import Problem, TestCase
from portal.schemas.judge import JudgeResult
from portal.schemas.submission import TestCaseResult
from portal.services.judge_client import JudgeClient, judge_client
from portal.services.sample_runner import time_value
from portal.services.submission_events import SubmissionEventBus, get_submission_event_bus

logger = logging.getLogger(__name__)

RECONCILED_COUNTER = Counter(
    "portal_submissions_reconciled_total",
    "Submissions that left PENDING",
    ["status"],
)


def final_status(compile_error: bool, all_passed: bool, first_failed: Optional[TestCaseResult]) -> SubmissionStatus:
    if compile_error:
        return SubmissionStatus.COMPILATION_ERROR
    if all_passed:
        return SubmissionStatus.ACCEPTED
    if first_failed is not None and first_failed.error:
        return SubmissionStatus.RUNTIME_ERROR
    return SubmissionStatus.WRONG_ANSWER


def _queued_test_cases(seed: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Seed entries in token order; cases the judge gave no token are dropped"""
    info = seed.get("test_case_info") or []
    if any("token" in entry for entry in info):
        return [entry for entry in info if entry.get("token")]
    return list(info)


def _sample_cases(contest: Optional[Contest], problem_idx: int) -> List[TestCase]:
    if contest is None:
        return []
    raw = contest.get_problem(problem_idx)
    if raw is None:
        return []
    return Problem.model_validate(raw).samples()


def aggregate(
    seed: Dict[str, Any],
    verdicts: List[JudgeResult],
    samples: Optional[List[TestCase]] = None,
) -> Dict[str, Any]:
    """
    Fold one finished verdict per token into the stored result blob

    Hidden test cases keep their actual output and error but lose their
    input and expected output. Sample cases fall back to the problem's own
    input/output when the judge response leaves them out.
    """
    samples = samples or []
    queued = _queued_test_cases(seed)
    test_results: List[TestCaseResult] = []
    compile_error: Optional[str] = None
    max_time: Optional[float] = None
    max_memory: Optional[int] = None

    for position, verdict in enumerate(verdicts):
        # Rows without seed metadata predate hidden tests; redact anyway.
        entry = queued[position] if position < len(queued) else {"index": position, "is_hidden": True}
        index = entry.get("index", position)
        is_hidden = bool(entry.get("is_hidden"))
        status = verdict.status
        if status.is_compilation_error and compile_error is None:
            compile_error = verdict.compile_output or verdict.error_text() or "Compilation Error"

        error = None
        if status.is_compilation_error:
            error = verdict.compile_output or verdict.error_text()
        elif status.is_runtime_error:
            error = verdict.error_text()

        stdin, expected = verdict.stdin, verdict.expected_output
        if not is_hidden and index < len(samples):
            stdin = samples[index].input if stdin is None else stdin
            expected = samples[index].output if expected is None else expected

        test_results.append(TestCaseResult(
            passed=status.is_accepted,
            index=index,
            input=stdin,
            expected=expected,
            actual=verdict.stdout,
            time=verdict.time,
            memory=verdict.memory,
            error=error,
            is_hidden=is_hidden,
        ))

        if verdict.time is not None:
            seconds = time_value(verdict.time)
            if max_time is None or seconds > max_time:
                max_time = seconds
        if verdict.memory is not None and (max_memory is None or verdict.memory > max_memory):
            max_memory = int(verdict.memory)

    passed_count = sum(1 for r in test_results if r.passed)
    total_count = len(verdicts)
    all_passed = total_count > 0 and passed_count == total_count
    first_failed = next((r for r in test_results if not r.passed), None)
    status = final_status(compile_error is not None, all_passed, first_failed)

    return {
        **seed,
        "status": status.value,
        "passed_count": passed_count,
        "total_count": total_count,
        "all_passed": all_passed,
        "first_failed": first_failed.redacted() if first_failed else None,
        "compile_error": compile_error,
        "max_time": f"{max_time:.3f}" if max_time is not None else None,
        "max_memory": max_memory,
        "test_results": [r.redacted() for r in test_results],
    }


class ReconciliationPoller:
    """
    Sweeps PENDING submissions and settles the ones whose tokens all finished

    Database work runs in worker threads, one at a time per session.
    """

    def __init__(
        self,
        client: JudgeClient,
        event_bus: SubmissionEventBus,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        stuck_max_age: Optional[timedelta] = None,
    ) -> None:
        self.client = client
        self.event_bus = event_bus
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.POLL_BATCH_SIZE
        self.max_attempts = max_attempts or settings.POLL_MAX_ATTEMPTS
        self.retry_base_delay = (
            settings.POLL_RETRY_BASE_DELAY_MS / 1000.0 if retry_base_delay is None else retry_base_delay
        )
        self.stuck_max_age = stuck_max_age or timedelta(minutes=settings.STUCK_SUBMISSION_MAX_AGE_MINUTES)

    def _load_batch(self, db: Session) -> List[Tuple[int, List[str]]]:
        """Ids and token lists only; rows are re-read inside each write"""
        pending = (
            db.query(ContestSubmission)
            .filter(ContestSubmission.status == SubmissionStatus.PENDING.value)
            .limit(self.batch_size)
            .all()
        )
        return [(submission.id, submission.token_list()) for submission in pending]

    async def poll_pending(self) -> Dict[str, int]:
        """One sweep over a bounded batch of PENDING submissions"""
        db = self.session_factory()
        processed = 0
        try:
            pending = await asyncio.to_thread(self._load_batch, db)
            for submission_id, tokens in pending:
                try:
                    if await self._reconcile(db, submission_id, tokens):
                        processed += 1
                except Exception as exc:
                    logger.exception("Polling error for submission %s: %s", submission_id, exc)
                    await asyncio.to_thread(db.rollback)
        finally:
            await asyncio.to_thread(db.close)

        if processed:
            logger.info("Reconciled %d pending submission(s)", processed)
        return {"processed_count": processed}

    async def fetch_with_retry(self, token: str) -> Optional[JudgeResult]:
        """Up to max_attempts fetches with exponential backoff; None when all fail"""
        for attempt in range(self.max_attempts):
            try:
                return await self.client.get_result(token)
            except JudgeError as exc:
                wait = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Judge result for token %s failed (attempt %d/%d): %s",
                    token, attempt + 1, self.max_attempts, exc.message,
                )
                await asyncio.sleep(wait)
        return None

    async def _reconcile(self, db: Session, submission_id: int, tokens: List[str]) -> bool:
        if not tokens:
            expired = await asyncio.to_thread(self._expire_if_stuck, db, submission_id)
            if expired is not None:
                self.event_bus.emit_submission_update(submission_id, *expired)
            return False

        verdicts: List[JudgeResult] = []
        for token in tokens:
            verdict = await self.fetch_with_retry(token)
            if verdict is None or not verdict.status.is_finished:
                # All-or-nothing: try the whole submission again next sweep.
                return False
            verdicts.append(verdict)

        settled = await asyncio.to_thread(self._settle, db, submission_id, verdicts)
        if settled is None:
            return False
        status, result = settled

        RECONCILED_COUNTER.labels(status).inc()
        self.event_bus.emit_submission_update(submission_id, status, result)
        logger.info(f"Submission {submission_id} judged: {status} ({result['passed_count']}/{result['total_count']})")
        return True

    def _settle(self, db: Session, submission_id: int, verdicts: List[JudgeResult]):
        """Write the verdict and its contest results entry in one commit"""
        submission = db.get(ContestSubmission, submission_id)
        if submission is None or not submission.is_pending:
            return None
        contest = db.query(Contest).filter(Contest.id == submission.contest_id).first()
        seed = dict(submission.result or {})
        result = aggregate(seed, verdicts, _sample_cases(contest, submission.problem_idx))
        status = result.pop("status")

        submission.status = status
        submission.result = result

        expected_total = seed.get("total_test_cases", result["total_count"])
        if result["total_count"] < expected_total:
            logger.error(
                "Submission %s judged on %d of %d test cases; the judge issued no token for the rest",
                submission.id, result["total_count"], expected_total,
            )

        if contest is not None:
            entry = {
                "submission_id": submission.id,
                "user_id": submission.user_id,
                "problem_idx": submission.problem_idx,
                "status": status,
                "passed_count": result["passed_count"],
                "total_count": result["total_count"],
                "total_test_cases": expected_total,
                "time": result["max_time"],
                "memory": result["max_memory"],
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            # Keyed by submission: a replayed reconciliation replaces, never duplicates.
            kept = [e for e in (contest.results or []) if e.get("submission_id") != submission.id]
            contest.results = kept + [entry]

        db.commit()
        return status, result

    def _expire_if_stuck(self, db: Session, submission_id: int):
        """Tokenless rows can never finish; fail them once they are old enough"""
        submission = db.get(ContestSubmission, submission_id)
        if submission is None or not submission.is_pending or submission.created_at is None:
            return None
        created_at = submission.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - created_at < self.stuck_max_age:
            return None

        status = SubmissionStatus.JUDGE_ERROR.value
        result = {**(submission.result or {}), "error": "The judge issued no tokens for this submission"}
        submission.status = status
        submission.result = result
        db.commit()

        RECONCILED_COUNTER.labels(status).inc()
        logger.warning("Submission %s had no judge tokens; marked %s", submission.id, status)
        return status, result


reconciliation_poller = ReconciliationPoller(judge_client, get_submission_event_bus())

"""Sample runner - synchronous "Run Code" against visible test cases"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from portal.config import settings
from portal.core.exceptions import JudgeResultError, NoTestCasesError
from portal.schemas.contest import TestCase
from portal.schemas.judge import JudgeResult
from portal.schemas.submission import RunCodeResult, TestCaseResult
from portal.services.contest_service import contest_service
from portal.services.judge_client import JudgeClient, judge_client

logger = logging.getLogger(__name__)


def time_value(value: Optional[str]) -> float:
    """Judge time strings compared numerically"""
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


class SampleRunner:
    """Runs sample test cases one by one and reports inline; nothing is stored"""

    def __init__(
        self,
        client: JudgeClient,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
    ) -> None:
        self.client = client
        self.poll_interval = (
            settings.RUN_POLL_INTERVAL_MS / 1000.0 if poll_interval is None else poll_interval
        )
        self.max_polls = max_polls or settings.RUN_MAX_POLLS

    async def _judge_test_case(
        self,
        source: str,
        language_id: int,
        test_case: TestCase,
        time_limit: float,
    ) -> JudgeResult:
        """Submit one test case and wait until the judge reports a terminal state"""
        submitted = await self.client.submit_with_test_case(
            source, language_id, test_case.input, test_case.output, time_limit
        )
        if not submitted.token:
            raise JudgeResultError("Judge returned no token for test case")

        for _ in range(self.max_polls):
            result = await self.client.get_result(submitted.token)
            if result.status.is_finished:
                return result
            await asyncio.sleep(self.poll_interval)
        raise JudgeResultError(
            f"Judge did not finish token {submitted.token} after {self.max_polls} polls"
        )

    async def run(
        self,
        db: Session,
        contest_id: int,
        problem_idx: int,
        source: str,
        language_id: int,
    ) -> RunCodeResult:
        """
        Run source against the problem's sample test cases

        Raises:
            NotFoundError: Unknown contest or problem index
            NoTestCasesError: Problem has no sample test cases
        """
        _, problem = contest_service.get_problem(db, contest_id, problem_idx)
        samples = problem.samples()
        if not samples:
            raise NoTestCasesError("sample")

        time_limit = problem.time_limit(settings.JUDGE_DEFAULT_TIME_LIMIT)
        total = len(samples)
        results: List[TestCaseResult] = []
        first_failed: Optional[TestCaseResult] = None
        max_time: Optional[str] = None
        max_memory: Optional[int] = None

        for index, test_case in enumerate(samples):
            try:
                verdict = await self._judge_test_case(source, language_id, test_case, time_limit)
            except Exception as exc:
                logger.warning(
                    "Run code: test case %d of contest %s problem %s failed: %s",
                    index, contest_id, problem_idx, exc,
                )
                case_result = TestCaseResult(
                    passed=False,
                    index=index,
                    input=test_case.input,
                    expected=test_case.output,
                    error=str(exc),
                )
            else:
                if verdict.status.is_compilation_error:
                    return RunCodeResult(
                        all_passed=False,
                        passed_count=0,
                        total_count=total,
                        first_failed=None,
                        compile_error=verdict.compile_output or verdict.error_text() or "Compilation Error",
                    )

                case_result = TestCaseResult(
                    passed=verdict.status.is_accepted,
                    index=index,
                    input=test_case.input,
                    expected=test_case.output,
                    actual=verdict.stdout,
                    time=verdict.time,
                    memory=verdict.memory,
                    error=verdict.error_text() if verdict.status.is_runtime_error else None,
                )
                if verdict.time is not None and (max_time is None or time_value(verdict.time) > time_value(max_time)):
                    max_time = verdict.time
                if verdict.memory is not None and (max_memory is None or verdict.memory > max_memory):
                    max_memory = verdict.memory

            results.append(case_result)
            if not case_result.passed and first_failed is None:
                first_failed = case_result

        passed_count = sum(1 for r in results if r.passed)
        return RunCodeResult(
            all_passed=passed_count == total,
            passed_count=passed_count,
            total_count=total,
            first_failed=first_failed,
            results=results,
            max_time=max_time,
            max_memory=max_memory,
        )


sample_runner = SampleRunner(judge_client)

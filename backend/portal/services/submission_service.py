"""Submission service - queues contest code for asynchronous judging"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from portal.config import settings
from portal.core.exceptions import AuthorizationError, JudgeSubmitError, NoTestCasesError, NotFoundError
from portal.models.submission import ContestSubmission, SubmissionStatus
from portal.models.user import User
from portal.services.contest_service import contest_service
from portal.services.judge_client import JudgeClient, judge_client
import logging

logger = logging.getLogger(__name__)


class SubmissionService:
    """Service for contest submissions"""

    def __init__(self, client: JudgeClient) -> None:
        self.client = client

    async def submit_for_judging(
        self,
        db: Session,
        contest_id: int,
        problem_idx: int,
        user_id: int,
        source: str,
        language_id: int,
    ) -> ContestSubmission:
        """
        Send every sample and hidden test case to the judge and store the tokens

        Returns the PENDING row at once; verdicts are collected later by the
        reconciliation poller.

        Raises:
            NotFoundError: Unknown contest or problem index
            NoTestCasesError: Problem has neither sample nor hidden test cases
        """
        _, problem = contest_service.get_problem(db, contest_id, problem_idx)
        samples = problem.samples()
        hidden = list(problem.hidden_test_cases)
        combined = [(tc, False) for tc in samples] + [(tc, True) for tc in hidden]
        if not combined:
            raise NoTestCasesError("sample or hidden")

        time_limit = problem.time_limit(settings.JUDGE_DEFAULT_TIME_LIMIT)
        tokens: List[str] = []
        test_case_info: List[Dict[str, Any]] = []

        # Strictly in order: token position is the only link back to the test case.
        for index, (test_case, is_hidden) in enumerate(combined):
            token: Optional[str] = None
            try:
                submitted = await self.client.submit_with_test_case(
                    source, language_id, test_case.input, test_case.output, time_limit
                )
                token = submitted.token
            except JudgeSubmitError as exc:
                logger.warning(
                    "Submit: test case %d of contest %s problem %s not queued: %s",
                    index, contest_id, problem_idx, exc.message,
                )
            if token:
                tokens.append(token)
            test_case_info.append({"index": index, "is_hidden": is_hidden, "token": token})

        submission = ContestSubmission(
            contest_id=contest_id,
            problem_idx=problem_idx,
            user_id=user_id,
            language_id=language_id,
            source_code=source,
            token=tokens[0] if tokens else None,
            tokens=tokens,
            status=SubmissionStatus.PENDING.value,
            result={
                "total_test_cases": len(combined),
                "sample_count": len(samples),
                "hidden_count": len(hidden),
                "test_case_info": test_case_info,
            },
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)

        logger.info(
            f"Submission {submission.id} queued with {len(tokens)}/{len(combined)} judge tokens"
        )
        return submission

    @staticmethod
    def get_submission(db: Session, submission_id: int) -> ContestSubmission:
        submission = db.query(ContestSubmission).filter(ContestSubmission.id == submission_id).first()
        if not submission:
            raise NotFoundError("Submission")
        return submission

    @staticmethod
    def get_visible_submission(db: Session, submission_id: int, viewer: User) -> ContestSubmission:
        """Owners and admins only"""
        submission = SubmissionService.get_submission(db, submission_id)
        if submission.user_id != viewer.id and not viewer.is_admin:
            raise AuthorizationError("You can only view your own submissions")
        return submission

    @staticmethod
    def get_contest_submissions(db: Session, contest_id: int) -> List[ContestSubmission]:
        return (
            db.query(ContestSubmission)
            .filter(ContestSubmission.contest_id == contest_id)
            .order_by(ContestSubmission.created_at.desc(), ContestSubmission.id.desc())
            .all()
        )

    @staticmethod
    def get_user_submissions(
        db: Session,
        user_id: int,
        contest_id: Optional[int] = None
    ) -> List[ContestSubmission]:
        query = db.query(ContestSubmission).filter(ContestSubmission.user_id == user_id)
        if contest_id is not None:
            query = query.filter(ContestSubmission.contest_id == contest_id)
        return query.order_by(ContestSubmission.created_at.desc(), ContestSubmission.id.desc()).all()


# Singleton instance
submission_service = SubmissionService(judge_client)

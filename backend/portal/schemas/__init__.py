"""Pydantic schemas for API validation"""

from portal.schemas.contest import (
    TestCase,
    ProblemConstraints,
    Problem,
    ContestCreate,
    ContestResponse,
    ResultEntry,
    LeaderboardRow,
)
from portal.schemas.submission import (
    CodeRequest,
    TestCaseResult,
    RunCodeResult,
    SubmissionResponse,
    SubmissionListResponse,
)
from portal.schemas.judge import JudgeStatus, JudgeToken, JudgeResult, JudgeSubmitRequest

__all__ = [
    "TestCase", "ProblemConstraints", "Problem", "ContestCreate", "ContestResponse",
    "ResultEntry", "LeaderboardRow",
    "CodeRequest", "TestCaseResult", "RunCodeResult", "SubmissionResponse", "SubmissionListResponse",
    "JudgeStatus", "JudgeToken", "JudgeResult", "JudgeSubmitRequest",
]

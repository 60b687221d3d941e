"""Contest and problem schemas"""

from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime


class TestCase(BaseModel):
    """Single stdin/expected-stdout pair"""
    input: str = ""
    output: str = ""


class ProblemConstraints(BaseModel):
    """Judge limits for a problem"""
    time_limit: Optional[float] = Field(None, gt=0, le=30)  # seconds
    memory_limit: Optional[int] = Field(None, gt=0)  # MB


class Problem(BaseModel):
    """Problem embedded in a contest"""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    difficulty: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    constraints: ProblemConstraints = Field(default_factory=ProblemConstraints)
    sample_test_cases: Optional[List[TestCase]] = None
    hidden_test_cases: List[TestCase] = Field(default_factory=list)
    # Legacy field; stands in for sample_test_cases when those are absent
    test_cases: Optional[List[TestCase]] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_name(cls, data: Any) -> Any:
        """Older admin tooling posted problems with `name` instead of `title`"""
        if isinstance(data, dict) and "title" not in data and "name" in data:
            data = {**data, "title": data["name"]}
        return data

    def samples(self) -> List[TestCase]:
        if self.sample_test_cases is not None:
            return list(self.sample_test_cases)
        return list(self.test_cases or [])

    def time_limit(self, default: float) -> float:
        return self.constraints.time_limit or default


class ContestCreate(BaseModel):
    """Create contest schema"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    timer: Optional[int] = Field(None, gt=0)
    problems: List[Problem] = Field(default_factory=list)


class ResultEntry(BaseModel):
    """Leaderboard-visible verdict for one reconciled submission"""
    submission_id: int
    user_id: int
    problem_idx: int
    status: str
    passed_count: int = 0
    total_count: int = 0
    total_test_cases: Optional[int] = None
    time: Optional[str] = None
    memory: Optional[int] = None
    created_at: Optional[str] = None


class ContestResponse(BaseModel):
    """Contest response schema"""
    id: int
    title: str
    description: Optional[str]
    start_time: Optional[datetime]
    timer: Optional[int]
    problems: List[Dict[str, Any]]
    results: List[Dict[str, Any]]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class LeaderboardRow(BaseModel):
    """One ranked participant"""
    rank: int
    user_id: int
    username: Optional[str] = None
    solved: int
    attempts: int
    problems: Dict[int, str]
    last_solved_at: Optional[str] = None

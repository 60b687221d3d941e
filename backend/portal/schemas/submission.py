"""Submission schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime


class CodeRequest(BaseModel):
    """Code sent to "Run Code" or "Submit" for one contest problem"""
    problem_idx: int = Field(..., ge=0)
    language_id: int = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=65536)

    @field_validator('source')
    @classmethod
    def sanitize_source(cls, v):
        """Sanitize code input"""
        v = v.replace('\x00', '')
        if not v.strip():
            raise ValueError('Source code is empty')
        return v


class TestCaseResult(BaseModel):
    """Outcome of one test case; position is within sample+hidden order"""
    passed: bool
    index: int
    input: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    time: Optional[str] = None
    memory: Optional[int] = None
    error: Optional[str] = None
    is_hidden: bool = False

    def redacted(self) -> Dict[str, Any]:
        """Storage form: hidden cases never keep their input/expected"""
        data = self.model_dump()
        if self.is_hidden:
            data.pop("input", None)
            data.pop("expected", None)
        return data


class RunCodeResult(BaseModel):
    """Sample-test feedback returned by "Run Code"; never persisted"""
    all_passed: bool
    passed_count: int
    total_count: int
    first_failed: Optional[TestCaseResult] = None
    compile_error: Optional[str] = None
    results: List[TestCaseResult] = Field(default_factory=list)
    max_time: Optional[str] = None
    max_memory: Optional[int] = None


class SubmissionResponse(BaseModel):
    """Submission response schema"""
    id: int
    contest_id: int
    problem_idx: int
    user_id: int
    language_id: int
    token: Optional[str]
    tokens: List[str]
    status: str
    result: Dict[str, Any]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class SubmissionListResponse(BaseModel):
    """Submission list entry (without source code or tokens)"""
    id: int
    contest_id: int
    problem_idx: int
    user_id: int
    language_id: int
    status: str
    created_at: Optional[datetime]

    class Config:
        from_attributes = True

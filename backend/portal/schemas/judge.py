"""Normalized judge payloads"""

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

STATUS_IN_QUEUE = 1
STATUS_PROCESSING = 2
STATUS_ACCEPTED = 3
STATUS_WRONG_ANSWER = 4
STATUS_TIME_LIMIT_EXCEEDED = 5
STATUS_COMPILATION_ERROR = 6


class JudgeStatus(BaseModel):
    id: int = 0
    description: str = ""

    @property
    def is_finished(self) -> bool:
        return self.id not in (STATUS_IN_QUEUE, STATUS_PROCESSING)

    @property
    def is_accepted(self) -> bool:
        return self.id == STATUS_ACCEPTED

    @property
    def is_compilation_error(self) -> bool:
        return self.id == STATUS_COMPILATION_ERROR

    @property
    def is_runtime_error(self) -> bool:
        # Compilation errors sit inside the 5+ range and are checked first.
        return self.id >= STATUS_TIME_LIMIT_EXCEEDED and not self.is_compilation_error


class JudgeToken(BaseModel):
    token: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class JudgeResult(BaseModel):
    """Verdict for a single token, whatever shape the judge answered with"""
    status: JudgeStatus = Field(default_factory=JudgeStatus)
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    compile_output: Optional[str] = None
    message: Optional[str] = None
    time: Optional[str] = None
    memory: Optional[int] = None
    stdin: Optional[str] = None
    expected_output: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    def error_text(self) -> Optional[str]:
        return self.stderr or self.compile_output or self.message or self.status.description or None


class JudgeSubmitRequest(BaseModel):
    """Raw judge passthrough request"""
    source: str = Field(..., min_length=1, max_length=65536)
    language_id: int = Field(..., gt=0)
    stdin: Optional[str] = None

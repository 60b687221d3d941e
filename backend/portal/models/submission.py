"""Contest submission model"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from portal.core.database import Base


class SubmissionStatus(str, Enum):
    """Submission lifecycle states, stored as their string values"""
    PENDING = "PENDING"
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "Wrong Answer"
    RUNTIME_ERROR = "Runtime Error"
    COMPILATION_ERROR = "Compilation Error"
    JUDGE_ERROR = "Judge Error"


class ContestSubmission(Base):
    """One judged attempt at a contest problem"""

    __tablename__ = "contest_submissions"

    id = Column(Integer, primary_key=True, index=True)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    problem_idx = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    language_id = Column(Integer, nullable=False)
    source_code = Column(Text, nullable=False)
    # First test-case token, kept for rows written before `tokens` existed
    token = Column(String(128))
    tokens = Column(JSON, nullable=False, default=list)
    status = Column(String(40), default=SubmissionStatus.PENDING.value, nullable=False)
    result = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    contest = relationship("Contest", back_populates="submissions")
    user = relationship("User", back_populates="submissions")

    __table_args__ = (
        Index('idx_contest_submissions_status', 'status'),
        Index('idx_contest_submissions_contest', 'contest_id'),
        Index('idx_contest_submissions_user', 'user_id'),
        CheckConstraint('problem_idx >= 0', name='chk_problem_idx'),
    )

    def __repr__(self):
        return f"<ContestSubmission(id={self.id}, contest_id={self.contest_id}, problem_idx={self.problem_idx}, status='{self.status}')>"

    @property
    def is_pending(self) -> bool:
        return self.status == SubmissionStatus.PENDING.value

    def token_list(self) -> list:
        """All judge tokens, falling back to the legacy single token"""
        if self.tokens:
            return list(self.tokens)
        if self.token:
            return [self.token]
        return []

"""Contest model - problems and leaderboard results are embedded JSON"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from portal.core.database import Base


class Contest(Base):
    """Contest with its ordered problem list and append-only results log"""

    __tablename__ = "contests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    start_time = Column(DateTime(timezone=True))
    timer = Column(Integer)  # minutes
    # Problems are addressed by list index; never reorder.
    problems = Column(JSON, nullable=False, default=list)
    results = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    submissions = relationship(
        "ContestSubmission",
        back_populates="contest",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_contests_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<Contest(id={self.id}, title='{self.title}', problems={len(self.problems or [])})>"

    @property
    def end_time(self) -> Optional[datetime]:
        if self.start_time is None or self.timer is None:
            return None
        return self.start_time + timedelta(minutes=self.timer)

    def get_problem(self, problem_idx: int) -> Optional[dict]:
        problems = self.problems or []
        if problem_idx < 0 or problem_idx >= len(problems):
            return None
        return problems[problem_idx]

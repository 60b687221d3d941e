"""Database models"""

from portal.models.user import User
from portal.models.contest import Contest
from portal.models.submission import ContestSubmission, SubmissionStatus

__all__ = ["User", "Contest", "ContestSubmission", "SubmissionStatus"]

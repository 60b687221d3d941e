"""API dependencies - authentication, authorization and service wiring"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from portal.core.database import get_db
from portal.core.security import decode_access_token
from portal.core.exceptions import AuthenticationError, AuthorizationError
from portal.models.user import User
from portal.services.judge_client import JudgeClient, judge_client
from portal.services.sample_runner import SampleRunner, sample_runner
from portal.services.submission_events import SubmissionEventBus, get_submission_event_bus
from portal.services.submission_service import SubmissionService, submission_service

# HTTP Bearer token scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token

    Raises:
        AuthenticationError: If token is invalid or user not found
    """
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


def get_judge_client() -> JudgeClient:
    return judge_client


def get_sample_runner() -> SampleRunner:
    return sample_runner


def get_submission_service() -> SubmissionService:
    return submission_service


def get_event_bus() -> SubmissionEventBus:
    return get_submission_event_bus()

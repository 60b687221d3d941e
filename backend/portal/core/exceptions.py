"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class NotFoundError(BaseAPIException):
    """Contest, problem or submission not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NoTestCasesError(BusinessLogicError):
    """Problem has no usable test cases for the requested mode"""
    def __init__(self, mode: str = "sample"):
        super().__init__(f"Problem has no {mode} test cases")


class ContestNotActiveError(BusinessLogicError):
    """Contest has not started yet or has already ended"""
    def __init__(self, reason: str = "Contest is not currently active"):
        super().__init__(reason)


# Judge Errors
class JudgeError(BaseAPIException):
    """External judge unreachable or returned a non-2xx response"""
    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        body: Any = None
    ):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            message,
            status_code=502,
            details={"upstream_status": upstream_status, "body": body}
        )


class JudgeSubmitError(JudgeError):
    """Submitting work to the judge failed"""


class JudgeResultError(JudgeError):
    """Fetching a verdict from the judge failed"""

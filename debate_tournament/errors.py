"""
debate_tournament/errors.py
Centralized error types for the tournament scoring engine.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Client-correctable failure (illegal transition, missing scores)
- 401: Acting user missing or unknown
- 403: Actor is not the assigned moderator/judge for the match
- 404: Event, match, team or user does not exist
- 409: Duplicate scheduling / assignment (collaborator concern)
"""

import logging
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    JUDGE_NOT_ASSIGNED = "JUDGE_NOT_ASSIGNED"

    NOT_FOUND = "NOT_FOUND"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    TRACE_NOT_FOUND = "TRACE_NOT_FOUND"

    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    BACKWARD_TRANSITION = "BACKWARD_TRANSITION"
    DRAFT_TO_COMPLETED = "DRAFT_TO_COMPLETED"
    MATCH_ALREADY_COMPLETED = "MATCH_ALREADY_COMPLETED"
    UNKNOWN_STAGE = "UNKNOWN_STAGE"
    INVALID_JUDGE_QUESTION_COUNT = "INVALID_JUDGE_QUESTION_COUNT"

    NO_JUDGES_ASSIGNED = "NO_JUDGES_ASSIGNED"
    TEAMS_NOT_ASSIGNED = "TEAMS_NOT_ASSIGNED"
    INCOMPLETE_SCORES = "INCOMPLETE_SCORES"
    SCORING_WINDOW_CLOSED = "SCORING_WINDOW_CLOSED"
    SUBMISSION_WINDOW_CLOSED = "SUBMISSION_WINDOW_CLOSED"
    SCORE_ALREADY_SUBMITTED = "SCORE_ALREADY_SUBMITTED"

    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ValidationError(APIError):
    """400 - illegal stage transition, incomplete scores, bad configuration"""
    def __init__(self, message: str, code: str = ErrorCode.VALIDATION_ERROR, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Validation Error",
            message=message,
            code=code,
            details=details
        )


class UnauthorizedError(APIError):
    """401 Unauthorized - acting user required"""
    def __init__(self, message: str = "Authentication required", code: str = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class PermissionDeniedError(APIError):
    """403 Forbidden - actor may not act on this match"""
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class ConflictError(APIError):
    """409 Conflict - duplicate scheduling or assignment"""
    def __init__(self, message: str, code: str = ErrorCode.CONFLICT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Conflict",
            message=message,
            code=code,
            details=details
        )


class AppendOnlyViolationError(Exception):
    """Raised when an audit log row is updated or deleted."""
    pass

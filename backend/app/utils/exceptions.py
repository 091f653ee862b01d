"""
Custom exception classes
"""
from fastapi import HTTPException


class CaseNotFoundError(HTTPException):
    """Raised when case doesn't exist"""
    def __init__(self, case_id):
        super().__init__(
            status_code=404,
            detail=f"Case {case_id} not found"
        )


class HearingNotFoundError(HTTPException):
    """Raised when hearing doesn't exist"""
    def __init__(self, hearing_id):
        super().__init__(
            status_code=404,
            detail=f"Hearing {hearing_id} not found"
        )


class CaseRequestNotFoundError(HTTPException):
    """Raised when case request doesn't exist"""
    def __init__(self, request_id):
        super().__init__(
            status_code=404,
            detail=f"Case request {request_id} not found"
        )


class NotificationNotFoundError(HTTPException):
    """Raised when notification doesn't exist"""
    def __init__(self, notification_id):
        super().__init__(
            status_code=404,
            detail=f"Notification {notification_id} not found"
        )


class UserNotFoundError(HTTPException):
    """Raised when a referenced user doesn't exist or has the wrong role"""
    def __init__(self, label: str = "User"):
        super().__init__(
            status_code=404,
            detail=f"{label} not found"
        )


class UnauthorizedError(HTTPException):
    """Raised when user doesn't own resource or lacks the role"""
    def __init__(self, detail: str = "You don't have permission to access this resource"):
        super().__init__(
            status_code=403,
            detail=detail
        )


class InvalidTransitionError(HTTPException):
    """Raised when a requested status move is not in the transition table"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=400,
            detail=reason
        )

    @property
    def reason(self) -> str:
        return self.detail


class LifecycleRuleError(HTTPException):
    """Raised when a business rule (advocate invariant, duration, dates) blocks a change"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=400,
            detail=reason
        )

    @property
    def reason(self) -> str:
        return self.detail

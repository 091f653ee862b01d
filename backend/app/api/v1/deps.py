# app/api/v1/deps.py

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from app.db.database import get_db
from app.db.models import User, UserRole
from app.core.config import settings
from app.services.notification_service import NotificationDispatcher
from app.utils.exceptions import UnauthorizedError

security = HTTPBearer()

# ============================================================================
# JWT Dependency
# ============================================================================

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Validate JWT token and return current user.
    Tokens are issued by the identity service; this API only verifies them.
    """
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    # Accept either "user_id" or the standard "sub" claim
    user_id = payload.get("user_id") or payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    try:
        user = db.get(User, _as_uuid(user_id))
    except ValueError:
        user = None

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user


def _as_uuid(value):
    from uuid import UUID

    return value if isinstance(value, UUID) else UUID(str(value))


# ============================================================================
# Role guards
# ============================================================================

def require_role(role: UserRole, detail: str):
    """Dependency factory: current user must hold `role`."""
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise UnauthorizedError(detail)
        return current_user
    return checker


get_court_officer = require_role(UserRole.court_officer, "Only court officers can perform this action")
get_litigant = require_role(UserRole.litigant, "Only litigants can perform this action")
get_advocate = require_role(UserRole.advocate, "Only advocates can perform this action")


# ============================================================================
# Notification dispatcher
# ============================================================================

def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Process-wide dispatcher built in the app lifespan."""
    return request.app.state.dispatcher

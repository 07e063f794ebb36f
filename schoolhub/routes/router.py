from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import AuthenticationError, PermissionDenied
from schoolhub.core.logging_config import get_logger, set_user_id
from schoolhub.core.security import decode_token
from schoolhub.models.models import User

logger = get_logger(__name__)

# auto_error=False so a missing header is reported as 401 instead of 403
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolves the requesting user from the bearer token.

    The token subject is looked up in the database on every request, so role
    changes and deletions take effect immediately.

    Raises:
        AuthenticationError: If the token is missing, malformed, expired, or
                             names a user that no longer exists.
    """
    if credentials is None:
        raise AuthenticationError("token missing")

    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if user_id is None:
        raise AuthenticationError("token invalid")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"Token for unknown user id {user_id}")
        raise AuthenticationError("user not found")

    set_user_id(str(user.id))
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like ``get_current_user`` but anonymous requests resolve to None."""
    if credentials is None:
        return None
    return get_current_user(credentials, db)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise PermissionDenied("Permission denied - admin access required")
    return current_user


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_staff:
        raise PermissionDenied("only admins and tutors can manage books")
    return current_user


def build_api_router() -> APIRouter:
    from schoolhub.routes import books, dashboards, login, students, users

    api_router = APIRouter(prefix="/api")
    api_router.include_router(login.router, prefix="/login", tags=["login"])
    api_router.include_router(users.router, prefix="/users", tags=["users"])
    api_router.include_router(books.router, prefix="/books", tags=["books"])
    api_router.include_router(students.router, prefix="/students", tags=["students"])
    api_router.include_router(dashboards.router, prefix="/dashboards", tags=["dashboards"])
    return api_router

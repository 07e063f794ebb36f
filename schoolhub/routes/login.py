from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import AuthenticationError
from schoolhub.core.logging_config import get_logger
from schoolhub.core.security import create_access_token, token_lifetime, verify_password
from schoolhub.models.models import User
from schoolhub.schemas.schemas import LoginRequest, LoginResponse

router = APIRouter()
logger = get_logger(__name__)


@router.post("", response_model=LoginResponse)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """
    Exchanges a username and password for a bearer token.

    The token lives for one hour, or for the remember-me period when
    ``rememberMe`` is set.

    Raises:
        AuthenticationError: If the username is unknown or the password is wrong.
    """
    user = db.query(User).filter(User.username == credentials.username).first()
    password_correct = user is not None and verify_password(
        credentials.password, user.password_hash
    )
    if not password_correct:
        logger.warning(f"Failed login for {credentials.username!r}")
        raise AuthenticationError("Invalid username or password")

    token = create_access_token(
        {"username": user.username, "id": user.id},
        expires_delta=token_lifetime(credentials.remember_me),
    )
    logger.info(f"User {user.id} logged in")

    data = {
        field: getattr(user, field)
        for field in LoginResponse.model_fields
        if hasattr(user, field)
    }
    data.update(token=token, remember_me=credentials.remember_me)
    return LoginResponse(**data)

import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import NotFoundError, PermissionDenied, ValidationFailed
from schoolhub.core.logging_config import get_logger
from schoolhub.core.security import get_password_hash
from schoolhub.models.models import User
from schoolhub.routes.router import get_current_user, get_optional_user, require_admin
from schoolhub.schemas.schemas import EMAIL_PATTERN, UserCreate, UserOut, UserUpdate
from schoolhub.services.lending import count_active_loans

router = APIRouter()
logger = get_logger(__name__)

MIN_LENGTH = 3


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def check_password(password: str) -> None:
    if not password or len(password) < MIN_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_LENGTH} characters long.")


def duplicate_error(error: IntegrityError) -> ValidationFailed:
    message = str(error.orig).lower()
    if "username" in message:
        return ValidationFailed("Username must be unique")
    if "email" in message:
        return ValidationFailed("Email must be unique")
    return ValidationFailed("Duplicate key error")


@router.get("", response_model=List[UserOut])
def list_users(
    current_user: User = Depends(require_admin), db: Session = Depends(get_db)
):
    """
    Lists every account with its books and students. Admin only.
    """
    return db.query(User).order_by(User.id).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Returns one account. Users may read their own, admins any.
    """
    if current_user.id != user_id and not current_user.is_admin:
        raise PermissionDenied("Permission denied")
    return get_user_or_404(db, user_id)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    user: UserCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """
    Registers a new account.

    Sign-up is open for the ``user`` role; creating tutors or admins needs an
    admin token.

    Raises:
        ValidationFailed: If the password or username is too short, the email
                          is missing or malformed, or the username/email is taken.
        PermissionDenied: If a non-admin asks for an elevated role.
    """
    check_password(user.password)
    if not user.username or len(user.username) < MIN_LENGTH:
        raise ValidationFailed(f"Username must be at least {MIN_LENGTH} characters long.")
    if not user.email:
        raise ValidationFailed("Email is required.")
    if not re.match(EMAIL_PATTERN, user.email):
        raise ValidationFailed("Please enter a valid email address")

    if user.role != "user" and (current_user is None or not current_user.is_admin):
        raise PermissionDenied("only admins can assign the tutor or admin role")

    if db.query(User).filter(User.username == user.username).first():
        raise ValidationFailed("Username must be unique")
    if db.query(User).filter(User.email == user.email).first():
        raise ValidationFailed("Email must be unique")

    new_user = User(
        username=user.username,
        name=user.name,
        email=user.email,
        password_hash=get_password_hash(user.password),
        role=user.role,
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise duplicate_error(e)
    db.refresh(new_user)

    logger.info(f"Created user {new_user.id} ({new_user.role})")
    return new_user


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    updates: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Updates profile fields of an account.

    Users may edit their own name, email, password and guardian details.
    Editing someone else, or changing a role, is reserved for admins.
    """
    if current_user.id != user_id and not current_user.is_admin:
        raise PermissionDenied("Permission denied")

    data = updates.model_dump(exclude_unset=True)
    if data.get("role") not in (None, current_user.role) and not current_user.is_admin:
        raise PermissionDenied("only admins can change roles")

    password = data.pop("password", None)
    if password is not None and password.strip():
        check_password(password)

    user = get_user_or_404(db, user_id)

    if data.get("email") and data["email"] != user.email:
        if db.query(User).filter(User.email == data["email"], User.id != user.id).first():
            raise ValidationFailed("Email must be unique")

    for field, value in data.items():
        if field in ("role", "email") and value is None:
            continue
        setattr(user, field, value)
    if password is not None and password.strip():
        user.password_hash = get_password_hash(password)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise duplicate_error(e)
    db.refresh(user)

    logger.info(f"User {user.id} updated by {current_user.id}")
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Deletes an account. Admin only; admins cannot delete themselves, and
    accounts with books still on loan are kept until those are returned.

    Students linked to the account are kept, with their guardian reference
    cleared.
    """
    user = get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise ValidationFailed("Cannot delete your own account")
    if count_active_loans(db, user.id):
        raise ValidationFailed("User still has borrowed books; return them first")

    db.delete(user)
    db.commit()

    logger.info(f"User {user_id} deleted by {current_user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

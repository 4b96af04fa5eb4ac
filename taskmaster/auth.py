"""Auth gate (bearer token -> user) and account operations."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskmaster.access import Requester, TaskAccess
from taskmaster.config import Settings
from taskmaster.database import Store, get_session
from taskmaster.errors import Unauthenticated, ValidationFailed
from taskmaster.models import User, UserRole
from taskmaster.schemas import LoginRequest, RegisterRequest
from taskmaster.security import (
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == normalize_email(email))).first()


def issue_token(user: User, settings: Settings) -> str:
    return create_access_token(user, settings.jwt_secret, settings.jwt_expires_minutes)


def register_user(session: Session, payload: RegisterRequest) -> User:
    """Create a regular account. Duplicate emails are a validation failure."""
    email = normalize_email(payload.email)
    if get_user_by_email(session, email) is not None:
        raise ValidationFailed(
            "User already exists",
            errors=[{"field": "email", "message": "Email is already registered"}],
        )

    user = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
        role=UserRole.user,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration of the same email.
        session.rollback()
        raise ValidationFailed(
            "User already exists",
            errors=[{"field": "email", "message": "Email is already registered"}],
        ) from exc
    session.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(session: Session, payload: LoginRequest) -> User:
    """Check credentials. Unknown email and wrong password look the same."""
    user = get_user_by_email(session, payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.debug("Failed login attempt")
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("User account is deactivated")
    logger.info("User %s logged in", user.id)
    return user


def ensure_admin(store: Store, settings: Settings) -> Optional[User]:
    """Create or promote the configured bootstrap admin. Idempotent."""
    if not settings.admin_email or not settings.admin_password:
        return None

    email = normalize_email(settings.admin_email)
    with store.session() as session:
        user = get_user_by_email(session, email)
        if user is None:
            user = User(
                name=settings.admin_name,
                email=email,
                password_hash=hash_password(settings.admin_password),
                role=UserRole.admin,
            )
            logger.info("Creating bootstrap admin account")
        elif user.role != UserRole.admin:
            user.role = UserRole.admin
            user.updated_at = datetime.now(timezone.utc)
            logger.info("Promoting user %s to admin", user.id)
        else:
            return user
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    """FastAPI dependency: resolve the bearer token to an active user."""
    token = extract_bearer_token(authorization)
    if not token:
        raise Unauthenticated("Not authorized to access this route")

    settings: Settings = request.app.state.settings
    claims = decode_access_token(token, settings.jwt_secret)

    user = session.get(User, claims.user_id)
    if user is None:
        logger.debug("Token for unknown user %s", claims.user_id)
        raise Unauthenticated("User no longer exists")
    if not user.is_active:
        raise Unauthenticated("User account is deactivated")

    request.state.user = user
    return user


def get_task_access(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> TaskAccess:
    return TaskAccess(session, Requester.from_user(user))

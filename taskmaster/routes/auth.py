"""Registration, login and current-user endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from taskmaster.auth import authenticate, get_current_user, issue_token, register_user
from taskmaster.database import get_session
from taskmaster.models import User
from taskmaster.responses import success
from taskmaster.schemas import LoginRequest, RegisterRequest, UserRead

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(body: RegisterRequest, request: Request, session: Session = Depends(get_session)) -> dict:
    """Create an account and return it with an access token."""
    user = register_user(session, body)
    token = issue_token(user, request.app.state.settings)
    return success(
        {"user": UserRead.from_user(user).to_json(), "token": token},
        message="User registered successfully",
    )


@router.post("/login")
def login(body: LoginRequest, request: Request, session: Session = Depends(get_session)) -> dict:
    """Exchange email and password for an access token."""
    user = authenticate(session, body)
    token = issue_token(user, request.app.state.settings)
    return success(
        {"user": UserRead.from_user(user).to_json(), "token": token},
        message="Login successful",
    )


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    """Return the authenticated user."""
    return success({"user": UserRead.from_user(user).to_json()})

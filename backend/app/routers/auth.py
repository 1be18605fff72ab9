"""
Authentication API endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from app.config import settings
from app.core.rate_limit import limiter
from app.dependencies import get_auth_service, get_current_user
from app.models.user import User
from app.schemas import (
    AdminBootstrapRequest,
    CurrentUser,
    LoginRequest,
    PasswordUpdateRequest,
    RegisterRequest,
    Token,
    UserResponse,
    envelope,
)
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_payload(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user_in: RegisterRequest, auth: AuthService = Depends(get_auth_service)
) -> Any:
    """
    Register a new standard user.
    """
    user = auth.register(user_in.name, user_in.email, user_in.password, user_in.address)
    return envelope(_user_payload(user), message="User registered successfully")


@router.post("/register-admin", status_code=status.HTTP_201_CREATED)
async def register_admin(
    admin_in: AdminBootstrapRequest, auth: AuthService = Depends(get_auth_service)
) -> Any:
    """
    Create the first administrator. Requires the bootstrap secret.
    """
    user = auth.bootstrap_admin(
        admin_in.name,
        admin_in.email,
        admin_in.password,
        admin_in.address,
        admin_in.admin_secret,
    )
    return envelope(_user_payload(user), message="Admin user created successfully")


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    credentials: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Any:
    """
    JSON login, returns a bearer token and the user.
    """
    result = auth.login(credentials.email, credentials.password)
    return envelope(
        {"token": result["token"], "user": _user_payload(result["user"])},
        message="Login successful",
    )


@router.post("/token", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    auth: AuthService = Depends(get_auth_service),
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    result = auth.login(form_data.username, form_data.password)
    return {"access_token": result["token"], "token_type": "bearer"}


@router.get("/validate")
async def validate_token(current_user: User = Depends(get_current_user)) -> Any:
    """
    Echo the user resolved from the bearer token.
    """
    user = CurrentUser.model_validate(current_user).model_dump(mode="json")
    return envelope({"user": user}, message="Token is valid")


@router.put("/password")
async def update_password(
    passwords: PasswordUpdateRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Change the caller's own password. Not available to admins.
    """
    auth.update_password(
        current_user, passwords.current_password, passwords.new_password
    )
    return envelope(message="Password updated successfully")

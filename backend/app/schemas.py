from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.models.user import UserRole


def envelope(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Success envelope shared by every endpoint."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


# --- Auth ---
# Fields stay optional so the service can report missing fields in the
# same shape as every other validation failure.
class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    address: Optional[str] = None


class AdminBootstrapRequest(RegisterRequest):
    admin_secret: Optional[str] = Field(None, alias="adminSecret")

    class Config:
        populate_by_name = True


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordUpdateRequest(BaseModel):
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")

    class Config:
        populate_by_name = True


class CurrentUser(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime

    class Config:
        from_attributes = True


class UserResponse(CurrentUser):
    address: str


class Token(BaseModel):
    access_token: str
    token_type: str


# --- Admin ---
class AdminUserCreate(RegisterRequest):
    role: Optional[str] = None


class StoreCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    owner_id: Optional[int] = None


# --- Stores ---
class StoreResponse(BaseModel):
    id: int
    name: str
    email: str
    address: str
    owner_id: Optional[int] = None
    overall_rating: float
    rating_count: int
    created_at: datetime

    class Config:
        from_attributes = True


# --- Ratings ---
class RatingSubmit(BaseModel):
    store_id: Optional[Any] = None
    rating: Optional[Any] = None
    comment: Optional[str] = None

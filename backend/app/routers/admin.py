"""
Administrator endpoints: platform statistics, user and store management.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, status

from app.core.listing import Page, page_params
from app.dependencies import (
    get_auth_service,
    get_current_user,
    get_dashboard_service,
    get_rating_ledger,
    get_store_directory,
    get_user_directory,
    require_role,
)
from app.models.user import User, UserRole
from app.schemas import AdminUserCreate, StoreCreate, StoreResponse, UserResponse, envelope
from app.services.auth_service import AuthService
from app.services.dashboard_service import DashboardService
from app.services.rating_ledger import RatingLedger
from app.services.store_directory import StoreDirectory
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_role(UserRole.ADMIN))])


@router.get("/dashboard")
async def get_dashboard(
    dashboard: DashboardService = Depends(get_dashboard_service),
) -> Any:
    """Platform-wide statistics."""
    return envelope(dashboard.admin_dashboard())


# --- Users ---


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: AdminUserCreate, auth: AuthService = Depends(get_auth_service)
) -> Any:
    """Create a user with any role."""
    user = auth.create_user(
        user_in.name, user_in.email, user_in.password, user_in.address, user_in.role
    )
    data = UserResponse.model_validate(user).model_dump(mode="json")
    return envelope(data, message="User created successfully")


@router.get("/users")
async def list_users(
    name: Optional[str] = None,
    email: Optional[str] = None,
    address: Optional[str] = None,
    role: Optional[str] = None,
    sort: Optional[str] = None,
    page: Page = Depends(page_params),
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    rows, total, sort_key = users.admin_list(name, email, address, role, sort, page)
    return envelope(rows, pagination=page.meta(total), sort=sort_key)


@router.get("/users/{user_id}")
async def get_user(
    user_id: int, users: UserDirectory = Depends(get_user_directory)
) -> Any:
    return envelope(users.get_user_detail(user_id))


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    users: UserDirectory = Depends(get_user_directory),
) -> Any:
    """Delete a user with their ratings. Owned stores become unassigned."""
    users.delete_user(user_id, current_user.id)
    return envelope(message="User deleted successfully")


# --- Stores ---


@router.post("/stores", status_code=status.HTTP_201_CREATED)
async def create_store(
    store_in: StoreCreate, directory: StoreDirectory = Depends(get_store_directory)
) -> Any:
    """Create a store, optionally assigned to a store owner."""
    store = directory.create_store(
        store_in.name, store_in.email, store_in.address, store_in.owner_id
    )
    data = StoreResponse.model_validate(store).model_dump(mode="json")
    return envelope(data, message="Store created successfully")


@router.get("/stores")
async def list_stores(
    name: Optional[str] = None,
    email: Optional[str] = None,
    address: Optional[str] = None,
    sort: Optional[str] = None,
    page: Page = Depends(page_params),
    directory: StoreDirectory = Depends(get_store_directory),
) -> Any:
    rows, total, sort_key = directory.admin_list(name, email, address, sort, page)
    return envelope(rows, pagination=page.meta(total), sort=sort_key)


@router.get("/stores/{store_id}")
async def get_store(
    store_id: int, directory: StoreDirectory = Depends(get_store_directory)
) -> Any:
    return envelope(directory.store_detail(store_id))


@router.delete("/stores/{store_id}")
async def delete_store(
    store_id: int, directory: StoreDirectory = Depends(get_store_directory)
) -> Any:
    """Delete a store and every rating of it."""
    directory.delete_store(store_id)
    return envelope(message="Store deleted successfully")


# --- Ratings ---


@router.post("/ratings/recompute")
async def recompute_ratings(ledger: RatingLedger = Depends(get_rating_ledger)) -> Any:
    """Rebuild every store's cached aggregate from the ratings table."""
    corrected = ledger.recompute_all()
    logger.info(f"Aggregate recompute requested by admin, {corrected} stores corrected")
    return envelope({"corrected": corrected}, message="Store ratings recomputed")

"""
API endpoints for store owners.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends

from app.core.listing import Page, page_params
from app.dependencies import (
    get_current_user,
    get_dashboard_service,
    get_store_directory,
    require_role,
)
from app.models.user import User, UserRole
from app.schemas import envelope
from app.services.dashboard_service import DashboardService
from app.services.store_directory import StoreDirectory

router = APIRouter(dependencies=[Depends(require_role(UserRole.STORE_OWNER))])


@router.get("/dashboard")
async def get_dashboard(
    current_user: User = Depends(get_current_user),
    dashboard: DashboardService = Depends(get_dashboard_service),
) -> Any:
    """Statistics across the caller's stores."""
    return envelope(dashboard.owner_dashboard(current_user.id))


@router.get("/ratings")
async def get_ratings(
    store_id: Optional[int] = None,
    rating: Optional[int] = None,
    sort: Optional[str] = None,
    page: Page = Depends(page_params),
    current_user: User = Depends(get_current_user),
    dashboard: DashboardService = Depends(get_dashboard_service),
) -> Any:
    """Ratings on the caller's stores, optionally for one store or value."""
    ratings, total, sort_key = dashboard.owner_ratings(
        current_user.id, store_id, rating, sort, page
    )
    return envelope(ratings, pagination=page.meta(total), sort=sort_key)


@router.get("/stores/{store_id}")
async def get_store(
    store_id: int,
    current_user: User = Depends(get_current_user),
    directory: StoreDirectory = Depends(get_store_directory),
) -> Any:
    """Details of one of the caller's stores."""
    return envelope(directory.owned_store_detail(current_user.id, store_id))

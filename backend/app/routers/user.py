"""
Endpoints for standard users: browsing stores and managing their ratings.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Response, status

from app.core.listing import Page, page_params
from app.dependencies import (
    get_current_user,
    get_rating_ledger,
    get_store_directory,
    require_role,
)
from app.models.user import User, UserRole
from app.schemas import RatingSubmit, envelope
from app.services.rating_ledger import RatingLedger
from app.services.store_directory import StoreDirectory

router = APIRouter(dependencies=[Depends(require_role(UserRole.USER))])


@router.get("/stores")
async def list_stores(
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: Page = Depends(page_params),
    current_user: User = Depends(get_current_user),
    directory: StoreDirectory = Depends(get_store_directory),
) -> Any:
    """Stores with the caller's own rating, searchable and sortable."""
    stores, total, sort_key = directory.list_for_user(
        current_user.id, search, sort, page
    )
    return envelope(stores, pagination=page.meta(total), sort=sort_key)


@router.post("/ratings")
async def submit_rating(
    rating_in: RatingSubmit,
    response: Response,
    current_user: User = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
) -> Any:
    """
    Rate a store, or overwrite the caller's previous rating of it.
    """
    change = ledger.submit(
        current_user.id, rating_in.store_id, rating_in.rating, rating_in.comment
    )
    if change.created:
        response.status_code = status.HTTP_201_CREATED
        message = "Rating submitted successfully"
    else:
        message = "Rating updated successfully"
    return envelope(change.to_dict(), message=message)


@router.get("/ratings")
async def list_ratings(
    sort: Optional[str] = None,
    page: Page = Depends(page_params),
    current_user: User = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
) -> Any:
    """Ratings the caller has submitted."""
    ratings, total, sort_key = ledger.list_by_user(current_user.id, sort, page)
    return envelope(ratings, pagination=page.meta(total), sort=sort_key)


@router.delete("/ratings/{store_id}")
async def delete_rating(
    store_id: int,
    current_user: User = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
) -> Any:
    """Withdraw the caller's rating of a store."""
    change = ledger.delete(current_user.id, store_id)
    return envelope(change.to_dict(), message="Rating deleted successfully")

"""
Public store endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends

from app.dependencies import get_optional_user, get_rating_ledger, get_store_directory
from app.models.user import User
from app.services.rating_ledger import RatingLedger
from app.services.store_directory import StoreDirectory
from app.schemas import envelope

router = APIRouter()


@router.get("")
async def list_stores(
    search: Optional[str] = None,
    viewer: Optional[User] = Depends(get_optional_user),
    directory: StoreDirectory = Depends(get_store_directory),
) -> Any:
    """
    List all stores. Signed-in callers also see their own rating.
    """
    stores = directory.public_list(search, viewer.id if viewer else None)
    return envelope(stores, count=len(stores))


@router.get("/{store_id}/ratings")
async def list_store_ratings(
    store_id: int, ledger: RatingLedger = Depends(get_rating_ledger)
) -> Any:
    """
    Every rating of a store with its current aggregate.
    """
    return envelope(ledger.list_by_store(store_id))

"""
Store Directory: store records, ownership assignment and store listings.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, NotFound, ValidationError
from app.core.listing import Page, resolve_field_sort, resolve_sort_token
from app.core.validators import (
    check_positive_id,
    clean_address,
    clean_email,
    clean_name,
    require_fields,
)
from app.models.rating import Rating
from app.models.store import Store
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

USER_STORE_SORTS = {
    "name_asc": (Store.name.asc(), Store.id.asc()),
    "name_desc": (Store.name.desc(), Store.id.asc()),
    "rating_desc": (Store.overall_rating.desc(), Store.name.asc()),
    "rating_asc": (Store.overall_rating.asc(), Store.name.asc()),
    "newest": (Store.created_at.desc(), Store.id.desc()),
    "oldest": (Store.created_at.asc(), Store.id.asc()),
}

ADMIN_STORE_SORT_COLUMNS = {
    "name": Store.name,
    "email": Store.email,
    "address": Store.address,
    "rating": Store.overall_rating,
    "created_at": Store.created_at,
}


def _like(term: str) -> str:
    return f"%{term.strip()}%"


def _active_owner_join():
    # Owners whose role was revoked after assignment are reported as unassigned
    return and_(User.id == Store.owner_id, User.role == UserRole.STORE_OWNER)


def store_to_dict(store: Store, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": store.id,
        "name": store.name,
        "email": store.email,
        "address": store.address,
        "owner_id": store.owner_id,
        "overall_rating": store.overall_rating,
        "rating_count": store.rating_count,
        "created_at": store.created_at,
    }
    data.update(extra)
    return data


class StoreDirectory:
    def __init__(self, db: Session):
        self.db = db

    # --- Admin CRUD ---

    def create_store(
        self,
        name: Optional[str],
        email: Optional[str],
        address: Optional[str],
        owner_id: Optional[int] = None,
    ) -> Store:
        """Create a store, optionally assigned to a store owner."""
        require_fields(name=name, email=email, address=address)
        name = clean_name(name, "Store name")
        email = clean_email(email)
        address = clean_address(address)
        if owner_id is not None:
            check_positive_id(owner_id, "Owner ID")

        if self.db.query(Store.id).filter(Store.email == email).first():
            raise Conflict("A store with this email address already exists")

        if owner_id is not None:
            owner = self.db.query(User).filter(User.id == owner_id).first()
            if owner is None:
                raise NotFound("The specified owner does not exist")
            if owner.role != UserRole.STORE_OWNER:
                raise ValidationError(
                    "The specified user is not a store owner",
                    details={"userRole": owner.role.value},
                )

        store = Store(name=name, email=email, address=address, owner_id=owner_id)
        self.db.add(store)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A store with this email address already exists")
        self.db.refresh(store)

        logger.info(
            f"Store created: id={store.id} email={store.email} owner={owner_id or 'unassigned'}"
        )
        return store

    def get_store(self, store_id: int) -> Store:
        store = self.db.query(Store).filter(Store.id == store_id).first()
        if store is None:
            raise NotFound("Store not found")
        return store

    def store_detail(self, store_id: int) -> Dict[str, Any]:
        """Store with its owner's identity and cached aggregate."""
        row = (
            self.db.query(Store, User.name, User.email)
            .outerjoin(User, _active_owner_join())
            .filter(Store.id == store_id)
            .first()
        )
        if row is None:
            raise NotFound("Store not found")
        store, owner_name, owner_email = row
        return store_to_dict(
            store,
            average_rating=store.overall_rating,
            total_ratings=store.rating_count,
            owner_name=owner_name,
            owner_email=owner_email,
        )

    def delete_store(self, store_id: int) -> None:
        """Delete a store; its ratings go with it."""
        store = self.get_store(store_id)
        self.db.delete(store)
        self.db.commit()
        logger.info(f"Store deleted: id={store_id}")

    # --- Listings ---

    def public_list(
        self, search: Optional[str] = None, viewer_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Every store, optionally filtered on name/address, with the viewer's own
        rating (``None`` for anonymous callers or unrated stores).
        """
        query = self.db.query(Store, Rating.rating).outerjoin(
            Rating, and_(Rating.store_id == Store.id, Rating.user_id == viewer_id)
        )
        if search and search.strip():
            term = _like(search)
            query = query.filter(or_(Store.name.ilike(term), Store.address.ilike(term)))

        return [
            store_to_dict(store, user_rating=user_rating)
            for store, user_rating in query.order_by(Store.id).all()
        ]

    def list_for_user(
        self,
        user_id: int,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        page: Page = Page(),
    ) -> Tuple[List[Dict[str, Any]], int, str]:
        """Searchable, sortable, paginated stores with the caller's rating."""
        sort_key, order_by = resolve_sort_token(sort, USER_STORE_SORTS, "name_asc")

        query = self.db.query(Store, Rating.rating).outerjoin(
            Rating, and_(Rating.store_id == Store.id, Rating.user_id == user_id)
        )
        if search and search.strip():
            term = _like(search)
            query = query.filter(
                or_(
                    Store.name.ilike(term),
                    Store.address.ilike(term),
                    Store.email.ilike(term),
                )
            )

        total = query.count()
        rows = (
            query.order_by(*order_by).offset(page.offset).limit(page.limit).all()
        )
        return (
            [store_to_dict(store, user_rating=user_rating) for store, user_rating in rows],
            total,
            sort_key,
        )

    def admin_list(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
        sort: Optional[str] = None,
        page: Page = Page(),
    ) -> Tuple[List[Dict[str, Any]], int, str]:
        """Filterable store list for administrators, with owner names."""
        sort_key, order_by = resolve_field_sort(sort, ADMIN_STORE_SORT_COLUMNS, "name:asc")

        query = self.db.query(Store, User.name).outerjoin(User, _active_owner_join())
        if name and name.strip():
            query = query.filter(Store.name.ilike(_like(name)))
        if email and email.strip():
            query = query.filter(Store.email.ilike(_like(email)))
        if address and address.strip():
            query = query.filter(Store.address.ilike(_like(address)))

        total = query.count()
        rows = (
            query.order_by(*order_by, Store.id.asc())
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return (
            [
                store_to_dict(store, rating=store.overall_rating, owner_name=owner_name)
                for store, owner_name in rows
            ],
            total,
            sort_key,
        )

    # --- Owner views ---

    def owned_store_detail(self, owner_id: int, store_id: int) -> Dict[str, Any]:
        """Details of a store the caller owns, with its rating distribution."""
        store = (
            self.db.query(Store)
            .filter(Store.id == store_id, Store.owner_id == owner_id)
            .first()
        )
        if store is None:
            raise NotFound("Store not found or you do not have permission to view it")

        unique_raters = (
            self.db.query(func.count(func.distinct(Rating.user_id)))
            .filter(Rating.store_id == store_id)
            .scalar()
        )
        distribution = (
            self.db.query(Rating.rating, func.count(Rating.id))
            .filter(Rating.store_id == store_id)
            .group_by(Rating.rating)
            .order_by(Rating.rating.desc())
            .all()
        )

        return {
            "store": store_to_dict(
                store,
                average_rating=store.overall_rating,
                total_ratings=store.rating_count,
                unique_raters=unique_raters or 0,
            ),
            "ratingDistribution": [
                {"rating": rating, "count": count} for rating, count in distribution
            ],
        }

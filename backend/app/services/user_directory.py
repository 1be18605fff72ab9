"""
User Directory: administrator views over accounts.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, ValidationError
from app.core.listing import Page, resolve_field_sort
from app.core.validators import clean_role
from app.models.rating import Rating
from app.models.store import Store
from app.models.user import User, UserRole
from app.services.rating_ledger import RatingLedger, round_average

logger = logging.getLogger(__name__)

ADMIN_USER_SORT_COLUMNS = {
    "name": User.name,
    "email": User.email,
    "address": User.address,
    "role": User.role,
    "created_at": User.created_at,
}


def user_to_dict(user: User, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "address": user.address,
        "role": user.role.value,
        "created_at": user.created_at,
    }
    data.update(extra)
    return data


class UserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def admin_list(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
        role: Optional[str] = None,
        sort: Optional[str] = None,
        page: Page = Page(),
    ) -> Tuple[List[Dict[str, Any]], int, str]:
        """Filterable, sortable, paginated user list."""
        sort_key, order_by = resolve_field_sort(sort, ADMIN_USER_SORT_COLUMNS, "name:asc")

        query = self.db.query(User)
        if name and name.strip():
            query = query.filter(User.name.ilike(f"%{name.strip()}%"))
        if email and email.strip():
            query = query.filter(User.email.ilike(f"%{email.strip()}%"))
        if address and address.strip():
            query = query.filter(User.address.ilike(f"%{address.strip()}%"))
        if role and role.strip():
            query = query.filter(User.role == clean_role(role.strip()))

        total = query.count()
        users = (
            query.order_by(*order_by, User.id.asc())
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return [user_to_dict(user) for user in users], total, sort_key

    def get_user_detail(self, user_id: int) -> Dict[str, Any]:
        """A user's profile; store owners also get totals across their stores."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")

        if user.role == UserRole.STORE_OWNER:
            store_count = (
                self.db.query(Store.id).filter(Store.owner_id == user.id).count()
            )
            total, count = (
                self.db.query(
                    func.coalesce(func.sum(Rating.rating), 0), func.count(Rating.id)
                )
                .join(Store, Rating.store_id == Store.id)
                .filter(Store.owner_id == user.id)
                .one()
            )
            return user_to_dict(
                user,
                store_count=store_count,
                average_rating=round_average(total, count),
                total_ratings=count,
            )

        rating_count = (
            self.db.query(Rating.id).filter(Rating.user_id == user.id).count()
        )
        return user_to_dict(user, rating_count=rating_count)

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        """
        Delete a user account with its ratings.

        Stores the user owned become unassigned; stores the user rated get
        their cached aggregates refreshed in the same transaction.
        """
        if user_id == acting_user_id:
            raise ValidationError("You cannot delete your own account")

        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")

        rated_store_ids = [
            store_id
            for (store_id,) in self.db.query(Rating.store_id).filter(
                Rating.user_id == user_id
            )
        ]

        try:
            self.db.delete(user)
            self.db.flush()
            RatingLedger(self.db).refresh_stores(rated_store_ids)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"User deleted: id={user_id} ({len(rated_store_ids)} store aggregates refreshed)"
        )

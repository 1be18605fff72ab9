"""
Dashboard Service: read-only statistics for administrators and store owners.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.listing import Page, resolve_sort_token
from app.models.rating import Rating
from app.models.store import Store
from app.models.user import User, UserRole
from app.services.rating_ledger import round_average

logger = logging.getLogger(__name__)

OWNER_RATING_SORTS = {
    "newest": (Rating.updated_at.desc(), Rating.id.desc()),
    "oldest": (Rating.updated_at.asc(), Rating.id.asc()),
    "rating_high": (Rating.rating.desc(), Rating.updated_at.desc()),
    "rating_low": (Rating.rating.asc(), Rating.updated_at.desc()),
    "store_name": (Store.name.asc(), Rating.updated_at.desc()),
    "user_name": (User.name.asc(), Rating.updated_at.desc()),
}

RECENT_ADMIN_ITEMS = 5
RECENT_OWNER_RATINGS = 10


class DashboardService:
    def __init__(self, db: Session):
        self.db = db

    def admin_dashboard(self) -> Dict[str, Any]:
        """Platform-wide counts, recent activity and the rating distribution."""
        role_counts = dict(
            self.db.query(User.role, func.count(User.id)).group_by(User.role).all()
        )
        total_stores = self.db.query(Store.id).count()
        unassigned_stores = (
            self.db.query(Store.id).filter(Store.owner_id.is_(None)).count()
        )
        rating_total, rating_count = self.db.query(
            func.coalesce(func.sum(Rating.rating), 0), func.count(Rating.id)
        ).one()

        overview = {
            "total_users": sum(role_counts.values()),
            "total_stores": total_stores,
            "total_ratings": rating_count,
            "total_admins": role_counts.get(UserRole.ADMIN, 0),
            "total_normal_users": role_counts.get(UserRole.USER, 0),
            "total_store_owners": role_counts.get(UserRole.STORE_OWNER, 0),
            "unassigned_stores": unassigned_stores,
            "overall_average_rating": round_average(rating_total, rating_count),
        }

        return {
            "overview": overview,
            "recentActivity": {
                "users": self._recent_users(),
                "stores": self._recent_stores(),
                "ratings": self._recent_ratings(limit=RECENT_ADMIN_ITEMS),
            },
            "ratingDistribution": self._distribution(),
        }

    def owner_dashboard(self, owner_id: int) -> Dict[str, Any]:
        """Statistics across every store the owner holds."""
        stores = (
            self.db.query(Store)
            .filter(Store.owner_id == owner_id)
            .order_by(Store.name)
            .all()
        )
        owned = Store.owner_id == owner_id

        total, count, unique_raters, first_rating, latest_rating = (
            self.db.query(
                func.coalesce(func.sum(Rating.rating), 0),
                func.count(Rating.id),
                func.count(func.distinct(Rating.user_id)),
                func.min(Rating.created_at),
                func.max(Rating.updated_at),
            )
            .join(Store, Rating.store_id == Store.id)
            .filter(owned)
            .one()
        )

        raters = (
            self.db.query(
                User.id,
                User.name,
                User.email,
                func.count(Rating.id).label("ratings_given"),
            )
            .join(Rating, Rating.user_id == User.id)
            .join(Store, Rating.store_id == Store.id)
            .filter(owned)
            .group_by(User.id, User.name, User.email)
            .order_by(User.name)
            .all()
        )

        return {
            "overview": {
                "total_stores": len(stores),
                "overall_average_rating": round_average(total, count),
                "unique_raters": unique_raters,
                "total_ratings": count,
                "first_rating_date": first_rating,
                "latest_rating_date": latest_rating,
            },
            "stores": [
                {
                    "id": store.id,
                    "name": store.name,
                    "email": store.email,
                    "address": store.address,
                    "average_rating": store.overall_rating,
                    "total_ratings": store.rating_count,
                    "created_at": store.created_at,
                }
                for store in stores
            ],
            "recentRatings": self._recent_ratings(
                limit=RECENT_OWNER_RATINGS, owner_id=owner_id
            ),
            "ratingDistribution": self._distribution(owner_id=owner_id),
            "raters": [
                {"id": uid, "name": name, "email": email, "ratings_given": given}
                for uid, name, email, given in raters
            ],
        }

    def owner_ratings(
        self,
        owner_id: int,
        store_id: Optional[int] = None,
        rating: Optional[int] = None,
        sort: Optional[str] = None,
        page: Page = Page(),
    ) -> Tuple[List[Dict[str, Any]], int, str]:
        """Ratings on the owner's stores with rater and store identity."""
        sort_key, order_by = resolve_sort_token(sort, OWNER_RATING_SORTS, "newest")

        query = (
            self.db.query(Rating, User, Store)
            .join(Store, Rating.store_id == Store.id)
            .join(User, Rating.user_id == User.id)
            .filter(Store.owner_id == owner_id)
        )
        if store_id is not None:
            query = query.filter(Store.id == store_id)
        if rating is not None:
            query = query.filter(Rating.rating == rating)

        total = query.count()
        rows = query.order_by(*order_by).offset(page.offset).limit(page.limit).all()
        return [_rating_row(r, u, s) for r, u, s in rows], total, sort_key

    # --- Helpers ---

    def _recent_users(self) -> List[Dict[str, Any]]:
        users = (
            self.db.query(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(RECENT_ADMIN_ITEMS)
            .all()
        )
        return [
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "role": user.role.value,
                "created_at": user.created_at,
            }
            for user in users
        ]

    def _recent_stores(self) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(Store, User.name)
            .outerjoin(
                User,
                (User.id == Store.owner_id) & (User.role == UserRole.STORE_OWNER),
            )
            .order_by(Store.created_at.desc(), Store.id.desc())
            .limit(RECENT_ADMIN_ITEMS)
            .all()
        )
        return [
            {
                "id": store.id,
                "name": store.name,
                "email": store.email,
                "owner_name": owner_name,
                "created_at": store.created_at,
            }
            for store, owner_name in rows
        ]

    def _recent_ratings(
        self, limit: int, owner_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        query = (
            self.db.query(Rating, User, Store)
            .join(Store, Rating.store_id == Store.id)
            .join(User, Rating.user_id == User.id)
        )
        if owner_id is not None:
            query = query.filter(Store.owner_id == owner_id)
        rows = (
            query.order_by(Rating.updated_at.desc(), Rating.id.desc())
            .limit(limit)
            .all()
        )
        return [_rating_row(r, u, s) for r, u, s in rows]

    def _distribution(self, owner_id: Optional[int] = None) -> List[Dict[str, int]]:
        """Rating value -> count, highest value first."""
        query = self.db.query(Rating.rating, func.count(Rating.id))
        if owner_id is not None:
            query = query.join(Store, Rating.store_id == Store.id).filter(
                Store.owner_id == owner_id
            )
        results = query.group_by(Rating.rating).order_by(Rating.rating.desc()).all()
        return [{"rating": value, "count": count} for value, count in results]


def _rating_row(rating: Rating, user: User, store: Store) -> Dict[str, Any]:
    return {
        "id": rating.id,
        "rating": rating.rating,
        "comment": rating.comment,
        "created_at": rating.created_at,
        "updated_at": rating.updated_at,
        "user_id": user.id,
        "user_name": user.name,
        "user_email": user.email,
        "store_id": store.id,
        "store_name": store.name,
    }

"""
Rating Ledger.

Stores one rating per (user, store) pair and keeps each store's cached
aggregate (``Store.overall_rating`` / ``Store.rating_count``) in step with the
ratings table. The cache is derived data: ``aggregate()`` recomputes it from
the ratings at any time and ``recompute_all()`` repairs any drift.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, ValidationError
from app.core.listing import Page, resolve_sort_token
from app.core.validators import (
    check_positive_id,
    check_rating_value,
    clean_comment,
)
from app.database import utcnow
from app.models.rating import Rating
from app.models.store import Store
from app.models.user import User

logger = logging.getLogger(__name__)

USER_RATING_SORTS = {
    "newest": (Rating.updated_at.desc(), Rating.id.desc()),
    "oldest": (Rating.updated_at.asc(), Rating.id.asc()),
    "rating_high": (Rating.rating.desc(), Rating.updated_at.desc()),
    "rating_low": (Rating.rating.asc(), Rating.updated_at.desc()),
    "store_name": (Store.name.asc(), Rating.id.asc()),
}


def round_average(total: Any, count: int) -> float:
    """Mean rounded half-up to one decimal; 0 when there is nothing to average."""
    if not count:
        return 0.0
    mean = Decimal(int(total)) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Aggregate:
    average: float
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"overall_rating": self.average, "total_ratings": self.count}


@dataclass(frozen=True)
class RatingChange:
    """Outcome of a submit or delete."""

    store_id: int
    action: str  # "created", "updated" or "deleted"
    aggregate: Aggregate
    value: Optional[int] = None
    aggregate_stale: bool = False

    @property
    def created(self) -> bool:
        return self.action == "created"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "store_id": self.store_id,
            "action": self.action,
            **self.aggregate.to_dict(),
            "aggregate_stale": self.aggregate_stale,
        }
        if self.value is not None:
            data["user_rating"] = self.value
        return data


class RatingLedger:
    """Rating upserts, deletes and views over one database session."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # --- Writes ---

    def submit(
        self,
        user_id: int,
        store_id: Optional[int],
        value: Any,
        comment: Optional[str] = None,
    ) -> RatingChange:
        """
        Create or overwrite the user's rating of a store and refresh the
        store's cached aggregate in the same transaction.
        """
        if store_id is None:
            raise ValidationError("Store ID is required to submit a rating")
        check_positive_id(store_id, "Store ID")
        if value is None:
            raise ValidationError("Rating is required")
        value = check_rating_value(value)
        comment = clean_comment(comment)

        try:
            store = self._lock_store(store_id)
            if store is None:
                raise NotFound("The specified store does not exist")

            rating, created = self._upsert(user_id, store.id, value, comment)
            aggregate, stale = self._refresh_after_write(store)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        action = "created" if created else "updated"
        logger.info(
            f"Rating {action}: user={user_id} store={store_id} value={value} "
            f"avg={aggregate.average} count={aggregate.count}"
        )
        return RatingChange(
            store_id=store_id,
            action=action,
            aggregate=aggregate,
            value=value,
            aggregate_stale=stale,
        )

    def delete(self, user_id: int, store_id: int) -> RatingChange:
        """Remove the user's rating of a store and refresh the aggregate."""
        check_positive_id(store_id, "Store ID")

        try:
            store = self._lock_store(store_id)
            rating = None
            if store is not None:
                rating = self._find(user_id, store_id, for_update=True)
            if rating is None:
                raise NotFound("No rating found for this store")

            self.db.delete(rating)
            self.db.flush()
            aggregate, stale = self._refresh_after_write(store)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Rating deleted: user={user_id} store={store_id}")
        return RatingChange(
            store_id=store_id,
            action="deleted",
            aggregate=aggregate,
            aggregate_stale=stale,
        )

    # --- Aggregates ---

    def aggregate(self, store_id: int) -> Aggregate:
        """Aggregate computed from the ratings table (the source of truth)."""
        self.db.flush()
        total, count = (
            self.db.query(
                func.coalesce(func.sum(Rating.rating), 0), func.count(Rating.id)
            )
            .filter(Rating.store_id == store_id)
            .one()
        )
        return Aggregate(average=round_average(total, count), count=count)

    def refresh_aggregate(self, store: Store) -> Aggregate:
        """Recompute one store's aggregate and write it to the cached fields."""
        aggregate = self.aggregate(store.id)
        store.overall_rating = aggregate.average
        store.rating_count = aggregate.count
        self.db.flush()
        return aggregate

    def refresh_stores(self, store_ids: Iterable[int]) -> None:
        """Refresh several stores inside the caller's transaction."""
        ids = sorted(set(store_ids))
        if not ids:
            return
        stores = (
            self.db.query(Store)
            .filter(Store.id.in_(ids))
            .order_by(Store.id)
            .with_for_update()
            .all()
        )
        for store in stores:
            self.refresh_aggregate(store)

    def recompute_all(self) -> int:
        """
        Rewrite every store's cached aggregate from the ratings table.

        Returns the number of stores whose cache was out of date.
        """
        totals = {
            store_id: (total, count)
            for store_id, total, count in self.db.query(
                Rating.store_id, func.sum(Rating.rating), func.count(Rating.id)
            ).group_by(Rating.store_id)
        }

        corrected = 0
        try:
            for store in self.db.query(Store).order_by(Store.id).with_for_update():
                total, count = totals.get(store.id, (0, 0))
                average = round_average(total, count)
                if store.overall_rating != average or store.rating_count != count:
                    logger.warning(
                        f"Store {store.id} aggregate drifted: cached "
                        f"{store.overall_rating}/{store.rating_count}, "
                        f"actual {average}/{count}"
                    )
                    store.overall_rating = average
                    store.rating_count = count
                    corrected += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Recomputed store aggregates, {corrected} corrected")
        return corrected

    # --- Views ---

    def list_by_store(self, store_id: int) -> Dict[str, Any]:
        """All ratings of a store, most recently updated first, with the aggregate."""
        store = self.db.query(Store).filter(Store.id == store_id).first()
        if store is None:
            raise NotFound("Store not found")

        rows = (
            self.db.query(Rating, User.name, User.email)
            .join(User, Rating.user_id == User.id)
            .filter(Rating.store_id == store_id)
            .order_by(Rating.updated_at.desc(), Rating.id.desc())
            .all()
        )
        aggregate = self.aggregate(store_id)

        return {
            "store": {"id": store.id, "name": store.name, "address": store.address},
            "ratings": [
                {
                    "id": rating.id,
                    "user_id": rating.user_id,
                    "user_name": user_name,
                    "user_email": user_email,
                    "rating": rating.rating,
                    "comment": rating.comment,
                    "created_at": rating.created_at,
                    "updated_at": rating.updated_at,
                }
                for rating, user_name, user_email in rows
            ],
            "averageRating": aggregate.average,
            "count": aggregate.count,
        }

    def list_by_user(
        self,
        user_id: int,
        sort: Optional[str] = None,
        page: Optional[Page] = None,
    ) -> Tuple[List[Dict[str, Any]], int, str]:
        """
        Ratings a user has made, joined with the rated store.

        Returns (rows, total, effective sort token).
        """
        sort_key, order_by = resolve_sort_token(sort, USER_RATING_SORTS, "newest")

        query = (
            self.db.query(Rating, Store)
            .join(Store, Rating.store_id == Store.id)
            .filter(Rating.user_id == user_id)
        )
        total = query.count()

        query = query.order_by(*order_by)
        if page is not None:
            query = query.offset(page.offset).limit(page.limit)

        rows = [
            {
                "id": rating.id,
                "rating": rating.rating,
                "comment": rating.comment,
                "created_at": rating.created_at,
                "updated_at": rating.updated_at,
                "store_id": store.id,
                "store_name": store.name,
                "store_address": store.address,
                "store_email": store.email,
                "store_overall_rating": store.overall_rating,
                "store_total_ratings": store.rating_count,
            }
            for rating, store in query.all()
        ]
        return rows, total, sort_key

    # --- Internals ---

    def _lock_store(self, store_id: int) -> Optional[Store]:
        # Store row first, rating row second: one lock order for every writer
        return (
            self.db.query(Store)
            .filter(Store.id == store_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _find(
        self, user_id: int, store_id: int, for_update: bool = False
    ) -> Optional[Rating]:
        query = self.db.query(Rating).filter(
            Rating.user_id == user_id, Rating.store_id == store_id
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def _upsert(
        self, user_id: int, store_id: int, value: int, comment: Optional[str]
    ) -> Tuple[Rating, bool]:
        now = self.clock()
        rating = self._find(user_id, store_id, for_update=True)

        if rating is None:
            try:
                with self.db.begin_nested():
                    rating = Rating(
                        user_id=user_id,
                        store_id=store_id,
                        rating=value,
                        comment=comment,
                        created_at=now,
                        updated_at=now,
                    )
                    self.db.add(rating)
                return rating, True
            except IntegrityError:
                # A concurrent first submission for the same pair won the insert
                logger.info(
                    f"Rating insert raced for user={user_id} store={store_id}, "
                    "retrying as update"
                )
                rating = self._find(user_id, store_id, for_update=True)
                if rating is None:
                    raise

        rating.rating = value
        rating.comment = comment
        rating.updated_at = now
        self.db.flush()
        return rating, False

    def _refresh_after_write(self, store: Store) -> Tuple[Aggregate, bool]:
        """
        Refresh the cached aggregate in a savepoint.

        A failed refresh keeps the rating write and reports the aggregate as
        stale; the next write or ``recompute_all`` repairs the cache.
        """
        try:
            with self.db.begin_nested():
                return self.refresh_aggregate(store), False
        except SQLAlchemyError:
            logger.warning(
                f"Aggregate refresh failed for store {store.id}, "
                "cached rating will lag until the next write",
                exc_info=True,
            )
            return self.aggregate(store.id), True

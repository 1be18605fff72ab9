"""
Tests for the rating ledger: upserts, deletes and the cached store aggregate.
"""
import random

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import NotFound, ValidationError
from app.core.listing import Page
from app.models.rating import Rating
from app.models.user import UserRole
from app.services.rating_ledger import RatingLedger, round_average
from app.services.store_directory import StoreDirectory
from app.services.user_directory import UserDirectory

pytestmark = pytest.mark.unit


def cached(test_db, store):
    test_db.refresh(store)
    return store.overall_rating, store.rating_count


def broken_refresh(self, store):
    raise OperationalError("UPDATE stores", {}, Exception("disk I/O error"))


class TestRoundAverage:
    def test_empty_is_zero(self):
        assert round_average(0, 0) == 0.0

    def test_rounds_half_up(self):
        assert round_average(9, 4) == 2.3
        assert round_average(27, 20) == 1.4
        assert round_average(10, 3) == 3.3


class TestSubmit:
    def test_first_submit_creates(self, test_db, make_user, make_store, clock):
        user = make_user()
        store = make_store()

        change = RatingLedger(test_db, clock).submit(user.id, store.id, 4, "Nice")

        assert change.created
        assert change.action == "created"
        assert change.aggregate.average == 4.0
        assert change.aggregate.count == 1
        assert not change.aggregate_stale
        assert cached(test_db, store) == (4.0, 1)

    def test_submit_then_list_by_store_shows_last_value(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)

        ledger.submit(user.id, store.id, 2)
        ledger.submit(user.id, store.id, 5, "Changed my mind")

        listing = ledger.list_by_store(store.id)
        mine = [r for r in listing["ratings"] if r["user_id"] == user.id]
        assert len(mine) == 1
        assert mine[0]["rating"] == 5
        assert mine[0]["comment"] == "Changed my mind"
        assert listing["averageRating"] == 5.0
        assert listing["count"] == 1

    def test_resubmit_same_value_is_idempotent(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)

        ledger.submit(user.id, store.id, 4)
        first = test_db.query(Rating).filter_by(user_id=user.id).one()
        first_updated = first.updated_at

        change = ledger.submit(user.id, store.id, 4)

        rows = test_db.query(Rating).filter_by(user_id=user.id, store_id=store.id).all()
        assert len(rows) == 1
        assert rows[0].rating == 4
        assert rows[0].updated_at > first_updated
        assert rows[0].created_at == first.created_at
        assert change.action == "updated"
        assert cached(test_db, store) == (4.0, 1)

    def test_two_submits_never_produce_two_rows(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user()
        store = make_store()

        RatingLedger(test_db, clock).submit(user.id, store.id, 1)
        RatingLedger(test_db, clock).submit(user.id, store.id, 3)

        assert (
            test_db.query(Rating).filter_by(user_id=user.id, store_id=store.id).count()
            == 1
        )

    def test_average_scenario(self, test_db, make_user, make_store, clock):
        alice = make_user()
        bob = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)

        ledger.submit(alice.id, store.id, 3)
        assert cached(test_db, store) == (3.0, 1)

        ledger.submit(bob.id, store.id, 5)
        assert cached(test_db, store) == (4.0, 2)

        ledger.submit(alice.id, store.id, 1)
        assert cached(test_db, store) == (3.0, 2)

    def test_unknown_store(self, test_db, make_user, clock):
        user = make_user()
        with pytest.raises(NotFound):
            RatingLedger(test_db, clock).submit(user.id, 999, 3)

    @pytest.mark.parametrize("value", [0, 6, -1, True, "5", 3.5])
    def test_rejects_bad_values(self, test_db, make_user, make_store, value):
        user = make_user()
        store = make_store()
        with pytest.raises(ValidationError):
            RatingLedger(test_db).submit(user.id, store.id, value)
        assert test_db.query(Rating).count() == 0

    def test_requires_store_and_rating(self, test_db, make_user, make_store):
        user = make_user()
        store = make_store()
        ledger = RatingLedger(test_db)
        with pytest.raises(ValidationError):
            ledger.submit(user.id, None, 3)
        with pytest.raises(ValidationError):
            ledger.submit(user.id, store.id, None)

    def test_comment_limit(self, test_db, make_user, make_store):
        user = make_user()
        store = make_store()
        with pytest.raises(ValidationError):
            RatingLedger(test_db).submit(user.id, store.id, 3, "x" * 501)

    def test_blank_comment_is_stored_as_none(self, test_db, make_user, make_store):
        user = make_user()
        store = make_store()
        RatingLedger(test_db).submit(user.id, store.id, 3, "   ")
        assert test_db.query(Rating).one().comment is None


class TestDelete:
    def test_delete_refreshes_aggregate(self, test_db, make_user, make_store, clock):
        alice = make_user()
        bob = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)
        ledger.submit(alice.id, store.id, 2)
        ledger.submit(bob.id, store.id, 5)

        change = ledger.delete(bob.id, store.id)

        assert change.action == "deleted"
        assert change.aggregate.count == 1
        assert cached(test_db, store) == (2.0, 1)

    def test_delete_last_rating_resets_to_zero(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)
        ledger.submit(user.id, store.id, 5)

        ledger.delete(user.id, store.id)

        assert cached(test_db, store) == (0.0, 0)

    def test_delete_missing_rating(self, test_db, make_user, make_store):
        user = make_user()
        store = make_store()
        with pytest.raises(NotFound):
            RatingLedger(test_db).delete(user.id, store.id)
        with pytest.raises(NotFound):
            RatingLedger(test_db).delete(user.id, 999)


class TestAggregateConsistency:
    def test_random_sequence_keeps_cache_in_step(
        self, test_db, make_user, make_store, clock
    ):
        users = [make_user() for _ in range(4)]
        stores = [make_store() for _ in range(3)]
        ledger = RatingLedger(test_db, clock)
        expected = {}
        rng = random.Random(1234)

        for _ in range(60):
            user = rng.choice(users)
            store = rng.choice(stores)
            key = (user.id, store.id)
            if key in expected and rng.random() < 0.3:
                ledger.delete(user.id, store.id)
                del expected[key]
            else:
                value = rng.randint(1, 5)
                ledger.submit(user.id, store.id, value)
                expected[key] = value

            for s in stores:
                values = [v for (_, sid), v in expected.items() if sid == s.id]
                want = (round_average(sum(values), len(values)), len(values))
                computed = ledger.aggregate(s.id)
                assert (computed.average, computed.count) == want
                assert cached(test_db, s) == want

    def test_failed_refresh_keeps_rating_and_reports_stale(
        self, test_db, make_user, make_store, clock, monkeypatch
    ):
        user = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)

        with monkeypatch.context() as m:
            m.setattr(RatingLedger, "refresh_aggregate", broken_refresh)
            change = ledger.submit(user.id, store.id, 4)

        assert change.aggregate_stale
        assert change.aggregate.average == 4.0
        assert test_db.query(Rating).filter_by(store_id=store.id).count() == 1
        assert cached(test_db, store) == (0.0, 0)

        assert ledger.recompute_all() == 1
        assert cached(test_db, store) == (4.0, 1)
        assert ledger.recompute_all() == 0

    def test_next_write_repairs_stale_cache(
        self, test_db, make_user, make_store, clock, monkeypatch
    ):
        alice = make_user()
        bob = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)

        with monkeypatch.context() as m:
            m.setattr(RatingLedger, "refresh_aggregate", broken_refresh)
            ledger.submit(alice.id, store.id, 5)

        ledger.submit(bob.id, store.id, 2)

        assert cached(test_db, store) == (3.5, 2)


class TestCascades:
    def test_store_delete_removes_ratings_from_user_lists(
        self, test_db, make_user, make_store, clock
    ):
        alice = make_user()
        bob = make_user()
        doomed = make_store()
        kept = make_store()
        ledger = RatingLedger(test_db, clock)
        ledger.submit(alice.id, doomed.id, 5)
        ledger.submit(bob.id, doomed.id, 4)
        ledger.submit(alice.id, kept.id, 3)

        StoreDirectory(test_db).delete_store(doomed.id)

        alice_rows, alice_total, _ = ledger.list_by_user(alice.id)
        bob_rows, bob_total, _ = ledger.list_by_user(bob.id)
        assert [r["store_id"] for r in alice_rows] == [kept.id]
        assert alice_total == 1
        assert bob_rows == []
        assert bob_total == 0

    def test_user_delete_refreshes_rated_stores(
        self, test_db, make_user, make_store, clock
    ):
        admin = make_user(role=UserRole.ADMIN)
        alice = make_user()
        bob = make_user()
        store = make_store()
        ledger = RatingLedger(test_db, clock)
        ledger.submit(alice.id, store.id, 5)
        ledger.submit(bob.id, store.id, 3)
        assert cached(test_db, store) == (4.0, 2)

        alice_id = alice.id

        UserDirectory(test_db).delete_user(alice_id, admin.id)

        assert cached(test_db, store) == (3.0, 1)
        assert test_db.query(Rating).filter_by(user_id=alice_id).count() == 0


class TestViews:
    def test_list_by_store_missing(self, test_db):
        with pytest.raises(NotFound):
            RatingLedger(test_db).list_by_store(42)

    def test_list_by_store_includes_rater_names(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user(name="Margaret Rater Of Stores")
        store = make_store()
        RatingLedger(test_db, clock).submit(user.id, store.id, 3)

        listing = RatingLedger(test_db).list_by_store(store.id)

        assert listing["store"]["id"] == store.id
        assert listing["ratings"][0]["user_name"] == "Margaret Rater Of Stores"
        assert listing["ratings"][0]["user_email"] == user.email

    def test_list_by_user_sorting_and_paging(
        self, test_db, make_user, make_store, clock
    ):
        user = make_user()
        stores = [make_store() for _ in range(3)]
        ledger = RatingLedger(test_db, clock)
        for store, value in zip(stores, [2, 5, 3]):
            ledger.submit(user.id, store.id, value)

        rows, total, sort_key = ledger.list_by_user(user.id, sort="rating_high")
        assert sort_key == "rating_high"
        assert [r["rating"] for r in rows] == [5, 3, 2]
        assert total == 3

        rows, _, _ = ledger.list_by_user(user.id, sort="newest")
        assert [r["store_id"] for r in rows] == [s.id for s in reversed(stores)]

        rows, total, sort_key = ledger.list_by_user(
            user.id, sort="bogus", page=Page(limit=2, offset=2)
        )
        assert sort_key == "newest"
        assert total == 3
        assert len(rows) == 1
        assert rows[0]["store_id"] == stores[0].id

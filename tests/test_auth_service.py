"""
Tests for registration, admin bootstrap, login and password changes.
"""
from datetime import timedelta

import pytest
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.core import security
from app.core.exceptions import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    ValidationError,
)
from app.models.user import User, UserRole
from app.services.auth_service import AuthService

pytestmark = pytest.mark.unit

NAME = "Jonathan Example Person"
ADDRESS = "221B Baker Street, London"
PASSWORD = "GoodPass1!"


class TestRegister:
    def test_register_creates_standard_user(self, test_db):
        user = AuthService(test_db).register(NAME, "Jon@Example.com", PASSWORD, ADDRESS)

        assert user.role == UserRole.USER
        assert user.email == "jon@example.com"
        assert user.hashed_password != PASSWORD
        assert security.verify_password(PASSWORD, user.hashed_password)

    def test_duplicate_email_is_case_insensitive(self, test_db):
        auth = AuthService(test_db)
        auth.register(NAME, "jon@example.com", PASSWORD, ADDRESS)
        with pytest.raises(Conflict):
            auth.register(NAME, "JON@example.COM", PASSWORD, ADDRESS)

    @pytest.mark.parametrize(
        "password", ["short1!", "alllowercase1!", "NoSpecialChar123", "WayTooLongPass1!!"]
    )
    def test_rejects_weak_passwords(self, test_db, password):
        with pytest.raises(ValidationError):
            AuthService(test_db).register(NAME, "jon@example.com", password, ADDRESS)
        assert test_db.query(User).count() == 0

    def test_accepts_good_password(self, test_db):
        AuthService(test_db).register(NAME, "jon@example.com", "GoodPass1!", ADDRESS)

    @pytest.mark.parametrize(
        "name,email,address",
        [
            ("Too Short", "jon@example.com", ADDRESS),
            ("x" * 61, "jon@example.com", ADDRESS),
            (NAME, "not-an-email", ADDRESS),
            (NAME, "jon @example.com", ADDRESS),
            (NAME, "jon@example.com", "abc"),
            (NAME, "jon@example.com", "x" * 401),
        ],
    )
    def test_field_rules(self, test_db, name, email, address):
        with pytest.raises(ValidationError):
            AuthService(test_db).register(name, email, PASSWORD, address)

    def test_missing_fields(self, test_db):
        with pytest.raises(ValidationError) as exc:
            AuthService(test_db).register(NAME, None, PASSWORD, "  ")
        assert exc.value.details == {"missing": ["email", "address"]}

    def test_name_is_trimmed_before_length_check(self, test_db):
        user = AuthService(test_db).register(
            f"   {NAME}   ", "jon@example.com", PASSWORD, ADDRESS
        )
        assert user.name == NAME


class TestBootstrapAdmin:
    def test_bootstrap_once(self, test_db):
        auth = AuthService(test_db)
        admin = auth.bootstrap_admin(
            NAME, "admin@example.com", PASSWORD, ADDRESS, settings.ADMIN_BOOTSTRAP_SECRET
        )
        assert admin.role == UserRole.ADMIN

        with pytest.raises(Conflict):
            auth.bootstrap_admin(
                NAME, "admin2@example.com", PASSWORD, ADDRESS, settings.ADMIN_BOOTSTRAP_SECRET
            )

    def test_second_attempt_conflicts_whatever_the_secret(self, test_db):
        auth = AuthService(test_db)
        auth.bootstrap_admin(
            NAME, "admin@example.com", PASSWORD, ADDRESS, settings.ADMIN_BOOTSTRAP_SECRET
        )
        with pytest.raises(Conflict):
            auth.bootstrap_admin(NAME, "admin2@example.com", PASSWORD, ADDRESS, "wrong")
        with pytest.raises(Conflict):
            auth.bootstrap_admin(NAME, "admin3@example.com", PASSWORD, ADDRESS, None)

    def test_racing_bootstrap_loser_is_removed(self, test_db, make_user, monkeypatch):
        first = make_user(role=UserRole.ADMIN)
        auth = AuthService(test_db)
        monkeypatch.setattr(auth, "admin_exists", lambda: False)

        with pytest.raises(Conflict):
            auth.bootstrap_admin(
                NAME, "late@example.com", PASSWORD, ADDRESS, settings.ADMIN_BOOTSTRAP_SECRET
            )

        admins = test_db.query(User).filter(User.role == UserRole.ADMIN).all()
        assert [a.id for a in admins] == [first.id]

    def test_racing_bootstrap_winner_is_kept(self, test_db, monkeypatch):
        auth = AuthService(test_db)
        create_user = auth.create_user

        def create_then_rival_commits(*args):
            user = create_user(*args)
            AuthService(test_db).create_user(
                NAME, "rival@example.com", PASSWORD, ADDRESS, UserRole.ADMIN
            )
            return user

        monkeypatch.setattr(auth, "create_user", create_then_rival_commits)

        admin = auth.bootstrap_admin(
            NAME, "admin@example.com", PASSWORD, ADDRESS, settings.ADMIN_BOOTSTRAP_SECRET
        )

        assert admin.role == UserRole.ADMIN
        assert test_db.query(User).filter(User.email == "admin@example.com").count() == 1

    def test_wrong_secret(self, test_db):
        with pytest.raises(Forbidden):
            AuthService(test_db).bootstrap_admin(
                NAME, "admin@example.com", PASSWORD, ADDRESS, "not-the-secret"
            )
        assert test_db.query(User).count() == 0


class TestLogin:
    @pytest.fixture
    def user(self, test_db):
        return AuthService(test_db).register(NAME, "jon@example.com", PASSWORD, ADDRESS)

    def test_login_issues_token(self, test_db, user):
        result = AuthService(test_db).login("JON@example.com", PASSWORD)

        assert result["user"].id == user.id
        payload = security.decode_access_token(result["token"])
        assert payload["sub"] == str(user.id)
        assert payload["role"] == "user"
        assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    def test_wrong_password_and_unknown_email_fail_the_same(self, test_db, user):
        auth = AuthService(test_db)
        with pytest.raises(InvalidCredentials) as wrong_password:
            auth.login("jon@example.com", "WrongPass1!")
        with pytest.raises(InvalidCredentials) as unknown_email:
            auth.login("nobody@example.com", PASSWORD)

        assert wrong_password.value.to_dict() == unknown_email.value.to_dict()
        assert wrong_password.value.status_code == 401

    def test_missing_or_malformed_input(self, test_db, user):
        auth = AuthService(test_db)
        with pytest.raises(ValidationError):
            auth.login("", PASSWORD)
        with pytest.raises(ValidationError):
            auth.login("jon@example.com", None)
        with pytest.raises(ValidationError):
            auth.login("not-an-email", PASSWORD)


class TestTokens:
    def test_expired_token_is_rejected(self):
        token = security.create_access_token(1, "user", expires_delta=timedelta(seconds=-1))
        with pytest.raises(ExpiredSignatureError):
            security.decode_access_token(token)

    def test_tampered_token_is_rejected(self):
        token = security.create_access_token(1, "user")
        forged = jwt.encode({"sub": "1", "role": "admin"}, "other-key", algorithm="HS256")
        assert security.decode_access_token(token)["role"] == "user"
        with pytest.raises(JWTError):
            security.decode_access_token(forged)


class TestUpdatePassword:
    def test_changes_password(self, test_db, make_user):
        user = make_user()
        auth = AuthService(test_db)

        auth.update_password(user, PASSWORD, "NewerPass2@")

        assert auth.authenticate_user(user.email, "NewerPass2@") is not None
        assert auth.authenticate_user(user.email, PASSWORD) is None

    def test_wrong_current_password(self, test_db, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Current password is incorrect"):
            AuthService(test_db).update_password(user, "WrongPass1!", "NewerPass2@")

    def test_weak_new_password(self, test_db, make_user):
        user = make_user()
        with pytest.raises(ValidationError):
            AuthService(test_db).update_password(user, PASSWORD, "weak")

    def test_missing_fields(self, test_db, make_user):
        user = make_user(role=UserRole.STORE_OWNER)
        with pytest.raises(ValidationError):
            AuthService(test_db).update_password(user, None, "NewerPass2@")

    def test_admins_are_refused(self, test_db, make_user):
        admin = make_user(role=UserRole.ADMIN)
        with pytest.raises(Forbidden):
            AuthService(test_db).update_password(admin, PASSWORD, "NewerPass2@")


class TestCreateUser:
    def test_any_role(self, test_db):
        auth = AuthService(test_db)
        owner = auth.create_user(NAME, "owner@example.com", PASSWORD, ADDRESS, "store_owner")
        assert owner.role == UserRole.STORE_OWNER

    def test_unknown_role(self, test_db):
        with pytest.raises(ValidationError):
            AuthService(test_db).create_user(
                NAME, "owner@example.com", PASSWORD, ADDRESS, "superuser"
            )

    def test_role_required(self, test_db):
        with pytest.raises(ValidationError):
            AuthService(test_db).create_user(
                NAME, "owner@example.com", PASSWORD, ADDRESS, None
            )

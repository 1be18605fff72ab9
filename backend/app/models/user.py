"""
User database model.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, Index
from sqlalchemy.orm import relationship

from app.database import Base, utcnow


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    STORE_OWNER = "store_owner"


class User(Base):
    """User model. Emails are stored lower-cased, so equality is case-insensitive."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_name", "name"),
        Index("idx_users_role", "role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(60), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    address = Column(String(400), nullable=False)
    role = Column(
        Enum(
            UserRole,
            name="user_roles",
            native_enum=False,
            values_callable=lambda roles: [r.value for r in roles],
            validate_strings=True,
        ),
        nullable=False,
        default=UserRole.USER,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    stores = relationship("Store", back_populates="owner", passive_deletes=True)
    ratings = relationship(
        "Rating",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

"""
Store database model.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.database import Base, utcnow


class Store(Base):
    """
    Store that users can rate.

    ``overall_rating`` and ``rating_count`` cache the aggregate of the store's
    ratings. Only the rating ledger writes them.
    """

    __tablename__ = "stores"
    __table_args__ = (
        Index("idx_stores_name", "name"),
        Index("idx_stores_owner", "owner_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(60), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    address = Column(String(400), nullable=False)
    owner_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    overall_rating = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="stores")
    ratings = relationship(
        "Rating",
        back_populates="store",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

from datetime import datetime

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Enum, UniqueConstraint, CheckConstraint
from database import Base
from sqlalchemy.orm import relationship

from models.evidence import PartyRole


class ItemReview(Base):
    """Оценка вещи, которую ставит арендатор."""

    __tablename__ = "item_reviews"
    __table_args__ = (
        UniqueConstraint("rental_id", "reviewer_id", name="uq_item_review_per_rental"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_item_review_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    rental = relationship("Rental")
    item = relationship("Item")


class PartyReview(Base):
    """Оценка участника аренды. role: роль, в которой оценивают reviewee."""

    __tablename__ = "party_reviews"
    __table_args__ = (
        UniqueConstraint("rental_id", "reviewer_id", "role", name="uq_party_review_per_role"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_party_review_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(Enum(PartyRole), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    rental = relationship("Rental")

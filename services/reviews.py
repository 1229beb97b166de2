from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.evidence import PartyRole
from models.review import ItemReview, PartyReview
from services.errors import DuplicateReview
from services.review_validator import ReviewKind, ReviewTarget, validate_and_build

Review = Union[ItemReview, PartyReview]


@dataclass
class ReviewOutcome:
    review: Review
    created: bool


@dataclass
class ReviewTotals:
    total_reviews: int = 0
    average_rating: float = 0.0
    star_counts: Dict[int, int] = field(default_factory=lambda: {star: 0 for star in range(1, 6)})


def find_review(db: Session, rental_id: int, reviewer_id: int, target: ReviewTarget) -> Optional[Review]:
    if target.kind is ReviewKind.ITEM:
        return db.query(ItemReview).filter(
            ItemReview.rental_id == rental_id,
            ItemReview.reviewer_id == reviewer_id,
        ).first()
    return db.query(PartyReview).filter(
        PartyReview.rental_id == rental_id,
        PartyReview.reviewer_id == reviewer_id,
        PartyReview.role == target.role,
    ).first()


def review_exists(db: Session, rental_id: int, reviewer_id: int, target: ReviewTarget) -> bool:
    return find_review(db, rental_id, reviewer_id, target) is not None


def _target_of(record: Review) -> ReviewTarget:
    if isinstance(record, ItemReview):
        return ReviewTarget.item()
    return ReviewTarget.party(record.reviewee_id, record.role)


def insert_review(db: Session, record: Review) -> Review:
    rental_id, reviewer_id, target = record.rental_id, record.reviewer_id, _target_of(record)

    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_review(db, rental_id, reviewer_id, target)
        # другая ошибка целостности, не дубль
        if existing is None:
            raise
        raise DuplicateReview(existing)

    db.refresh(record)
    return record


def submit_review(
        db: Session,
        rental_id: int,
        reviewer_id: int,
        target: ReviewTarget,
        rating,
        comment: Optional[str] = None,
) -> ReviewOutcome:
    """Повторная отправка того же отзыва не ошибка: вернётся сохранённая строка с created=False."""
    record = validate_and_build(db, rental_id, reviewer_id, target, rating, comment)
    try:
        stored = insert_review(db, record)
    except DuplicateReview as e:
        logger.info(f"Review already recorded: rental={rental_id}, reviewer={reviewer_id}, target={target.kind.value}")
        return ReviewOutcome(review=e.existing, created=False)

    logger.info(f"Review stored: rental={rental_id}, reviewer={reviewer_id}, target={target.kind.value}, rating={stored.rating}")
    return ReviewOutcome(review=stored, created=True)


def _totals(rows) -> ReviewTotals:
    totals = ReviewTotals()
    rating_sum = 0
    for rating, count in rows:
        totals.star_counts[rating] = count
        totals.total_reviews += count
        rating_sum += rating * count
    if totals.total_reviews:
        totals.average_rating = round(rating_sum / totals.total_reviews, 2)
    return totals


def item_review_totals(db: Session, item_id: int) -> ReviewTotals:
    rows = (
        db.query(ItemReview.rating, func.count(ItemReview.id))
        .filter(ItemReview.item_id == item_id)
        .group_by(ItemReview.rating)
        .all()
    )
    return _totals(rows)


def party_review_totals(db: Session, party_id: int, role: PartyRole) -> ReviewTotals:
    rows = (
        db.query(PartyReview.rating, func.count(PartyReview.id))
        .filter(PartyReview.reviewee_id == party_id, PartyReview.role == role)
        .group_by(PartyReview.rating)
        .all()
    )
    return _totals(rows)

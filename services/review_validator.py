from dataclasses import dataclass
from typing import Optional, Union
import enum

from sqlalchemy.orm import Session

from models.evidence import PartyRole
from models.review import ItemReview, PartyReview
from services.errors import RentalNotFound, ReviewRejected
from services.rentals import get_rental


class ReviewKind(enum.Enum):
    ITEM = "item"
    PARTY = "party"


@dataclass(frozen=True)
class ReviewTarget:
    # для оценки участника role: роль, в которой оценивают reviewee

    kind: ReviewKind
    reviewee_id: Optional[int] = None
    role: Optional[PartyRole] = None

    @classmethod
    def item(cls) -> "ReviewTarget":
        return cls(kind=ReviewKind.ITEM)

    @classmethod
    def party(cls, reviewee_id: int, role: PartyRole) -> "ReviewTarget":
        return cls(kind=ReviewKind.PARTY, reviewee_id=reviewee_id, role=role)


def _check_rating(rating) -> int:
    # bool является подклассом int, его не принимаем
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ReviewRejected("invalid_rating", "rating must be an integer from 1 to 5")
    return rating


def validate_and_build(
        db: Session,
        rental_id: int,
        reviewer_id: int,
        target: ReviewTarget,
        rating,
        comment: Optional[str] = None,
) -> Union[ItemReview, PartyReview]:
    """
    Проверяет, кто кого может оценить, и собирает строку отзыва.

    Проверки идут в фиксированном порядке, у каждой свой код причины.
    Объект в сессию не добавляется.
    """
    try:
        rental = get_rental(db, rental_id)
    except RentalNotFound:
        raise ReviewRejected("rental_not_found", "rental not found")

    comment = (comment or "").strip() or None

    if target.kind is ReviewKind.ITEM:
        if reviewer_id != rental.renter_id:
            raise ReviewRejected("item_reviewer_not_renter", "only the renter may rate the item")
        return ItemReview(
            rental_id=rental.id,
            item_id=rental.item_id,
            reviewer_id=reviewer_id,
            rating=_check_rating(rating),
            comment=comment,
        )

    if target.kind is not ReviewKind.PARTY:
        raise ValueError(f"Unknown review kind: {target.kind}")

    if target.role is PartyRole.OWNER:
        if target.reviewee_id != rental.owner_id:
            raise ReviewRejected("reviewee_not_owner", "the reviewee is not the owner of this rental")
        if reviewer_id != rental.renter_id:
            raise ReviewRejected("owner_reviewer_not_renter", "only the renter may rate the owner")
    elif target.role is PartyRole.RENTER:
        if target.reviewee_id != rental.renter_id:
            raise ReviewRejected("reviewee_not_renter", "the reviewee is not the renter of this rental")
        if reviewer_id != rental.owner_id:
            raise ReviewRejected("renter_reviewer_not_owner", "only the owner may rate the renter")
    else:
        raise ReviewRejected("invalid_role", "review role must be owner or renter")

    if reviewer_id == target.reviewee_id:
        raise ReviewRejected("self_review", "you cannot rate yourself")

    return PartyReview(
        rental_id=rental.id,
        reviewer_id=reviewer_id,
        reviewee_id=target.reviewee_id,
        role=target.role,
        rating=_check_rating(rating),
        comment=comment,
    )

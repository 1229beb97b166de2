from dataclasses import dataclass
from typing import Optional, Tuple
import enum

from loguru import logger
from sqlalchemy.orm import Session

from models.evidence import EvidencePhase, PartyRole
from services.errors import ReviewRejected
from services.review_validator import ReviewTarget
from services.rentals import get_rental
from services.reviews import Review, review_exists, submit_review
from services.sufficiency import is_satisfied


# арендатор: вещь, затем владелец; владелец: арендатор
class FlowKind(enum.Enum):
    NO_FLOW = "no_flow"
    RENTER_FLOW = "renter_flow"
    OWNER_FLOW = "owner_flow"


@dataclass(frozen=True)
class FlowDecision:
    kind: FlowKind
    rental_id: int
    reviewer_id: Optional[int] = None
    steps: Tuple[ReviewTarget, ...] = ()
    next_index: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_flow(self) -> bool:
        return self.kind is not FlowKind.NO_FLOW

    @property
    def finished(self) -> bool:
        return self.is_flow and self.next_index is None


@dataclass
class StepResult:
    review: Review
    created: bool
    next_index: Optional[int]

    @property
    def finished(self) -> bool:
        return self.next_index is None


def _no_flow(rental_id: int, reason: str) -> FlowDecision:
    return FlowDecision(kind=FlowKind.NO_FLOW, rental_id=rental_id, reason=reason)


def _first_pending(db: Session, rental_id: int, reviewer_id: int, steps) -> Optional[int]:
    for index, step in enumerate(steps):
        if not review_exists(db, rental_id, reviewer_id, step):
            return index
    return None


def evaluate(db: Session, rental_id: int, phase: EvidencePhase, triggering_party: PartyRole) -> FlowDecision:
    """Какой сценарий отзывов предложить стороне, закончившей этап."""
    if phase is not EvidencePhase.RETURN:
        return _no_flow(rental_id, "not_return_phase")

    rental = get_rental(db, rental_id)
    if rental.is_self_rental:
        logger.info(f"Rental {rental_id}: owner and renter are the same user, reviews skipped")
        return _no_flow(rental_id, "self_rental")

    if not is_satisfied(db, rental_id, EvidencePhase.RETURN, triggering_party):
        return _no_flow(rental_id, "evidence_incomplete")

    if triggering_party is PartyRole.RENTER:
        kind = FlowKind.RENTER_FLOW
        reviewer_id = rental.renter_id
        steps = (
            ReviewTarget.item(),
            ReviewTarget.party(rental.owner_id, PartyRole.OWNER),
        )
    elif triggering_party is PartyRole.OWNER:
        kind = FlowKind.OWNER_FLOW
        reviewer_id = rental.owner_id
        steps = (ReviewTarget.party(rental.renter_id, PartyRole.RENTER),)
    else:
        raise ValueError(f"Unknown party role: {triggering_party}")

    return FlowDecision(
        kind=kind,
        rental_id=rental_id,
        reviewer_id=reviewer_id,
        steps=steps,
        next_index=_first_pending(db, rental_id, reviewer_id, steps),
    )


def submit_step(db: Session, decision: FlowDecision, index: int, rating, comment: Optional[str] = None) -> StepResult:
    if not decision.is_flow:
        raise ReviewRejected("no_review_flow", "there is nothing to review for this rental")
    if not 0 <= index < len(decision.steps):
        raise ReviewRejected("unknown_step", f"review step {index} does not exist")

    # предыдущие шаги должны быть уже сохранены (успешно или ранее)
    for previous in decision.steps[:index]:
        if not review_exists(db, decision.rental_id, decision.reviewer_id, previous):
            raise ReviewRejected("previous_step_pending", "rate the item before rating the owner")

    outcome = submit_review(db, decision.rental_id, decision.reviewer_id, decision.steps[index], rating, comment)

    next_index = index + 1 if index + 1 < len(decision.steps) else None
    return StepResult(review=outcome.review, created=outcome.created, next_index=next_index)


def on_return_phase_actor_finished(db: Session, rental_id: int, triggering_party: PartyRole) -> FlowDecision:
    decision = evaluate(db, rental_id, EvidencePhase.RETURN, triggering_party)
    logger.info(
        f"Rental {rental_id}: {triggering_party.value} finished return, review flow={decision.kind.value}"
        + (f" ({decision.reason})" if decision.reason else "")
    )
    return decision

from typing import List

from fastapi import FastAPI, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from database import get_db
from models.evidence import EvidencePhase, PartyRole
from models.item import Item
from models.rental import RentalStatus
from models.review import ItemReview
from models.user import User
from services import review_gate
from services.errors import StatusConflict, ValidationRejection
from services.evidence import append_evidence, list_evidence
from services.rentals import create_rental, find_overdue_returns, get_rental
from services.review_validator import ReviewKind, ReviewTarget
from services.reviews import ReviewTotals, item_review_totals, party_review_totals, submit_review
from services.status_engine import on_evidence_uploaded
from services.sufficiency import evidence_progress
from api.schemas import (
    UserIn, UserOut, ItemIn, ItemOut, RentalIn, RentalOut,
    EvidenceIn, EvidenceOut, PhaseProgressOut, PartyProgressOut,
    EvidenceUploadedIn, StatusOut, ReturnFinishedIn, FlowDecisionOut, ReviewTargetOut,
    ReviewIn, StepIn, ReviewOut, StepOut, ReviewTotalsOut,
)

app = FastAPI(title="Rental hand-off API")

RETRY_MESSAGE = "Service temporarily unavailable, please retry"


@app.exception_handler(ValidationRejection)
async def validation_rejection_handler(request: Request, exc: ValidationRejection):
    status_code = 404 if exc.reason.endswith("_not_found") else 400
    return JSONResponse(status_code=status_code, content={"reason": exc.reason, "message": exc.message})


@app.exception_handler(StatusConflict)
async def status_conflict_handler(request: Request, exc: StatusConflict):
    logger.warning(f"Status conflict: {exc}")
    return JSONResponse(status_code=503, content={"reason": "status_conflict", "message": RETRY_MESSAGE})


@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    logger.error(f"Storage unavailable: {exc}")
    return JSONResponse(status_code=503, content={"reason": "storage_unavailable", "message": RETRY_MESSAGE})


def _review_out(review, created: bool) -> ReviewOut:
    if isinstance(review, ItemReview):
        return ReviewOut(
            id=review.id, rental_id=review.rental_id, kind=ReviewKind.ITEM,
            reviewer_id=review.reviewer_id, rating=review.rating, comment=review.comment, created=created,
        )
    return ReviewOut(
        id=review.id, rental_id=review.rental_id, kind=ReviewKind.PARTY,
        reviewer_id=review.reviewer_id, reviewee_id=review.reviewee_id, role=review.role,
        rating=review.rating, comment=review.comment, created=created,
    )


def _totals_out(totals: ReviewTotals) -> ReviewTotalsOut:
    return ReviewTotalsOut(
        total_reviews=totals.total_reviews,
        average_rating=totals.average_rating,
        **{f"star_{star}_count": count for star, count in totals.star_counts.items()},
    )


def _decision_out(decision: review_gate.FlowDecision) -> FlowDecisionOut:
    return FlowDecisionOut(
        kind=decision.kind.value,
        rental_id=decision.rental_id,
        reviewer_id=decision.reviewer_id,
        steps=[ReviewTargetOut(kind=s.kind, reviewee_id=s.reviewee_id, role=s.role) for s in decision.steps],
        next_index=decision.next_index,
        finished=decision.finished,
        reason=decision.reason,
    )


@app.post("/users", response_model=UserOut, status_code=201)
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    user = User(name=payload.name, telegram_id=payload.telegram_id, registered=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.post("/items", response_model=ItemOut, status_code=201)
def create_item(payload: ItemIn, db: Session = Depends(get_db)):
    if not db.query(User).filter(User.id == payload.owner_id).first():
        raise HTTPException(status_code=404, detail="Owner not found")
    item = Item(owner_id=payload.owner_id, name=payload.name, description=payload.description)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@app.post("/rentals", response_model=RentalOut, status_code=201)
def create_rental_endpoint(payload: RentalIn, db: Session = Depends(get_db)):
    return create_rental(db, payload.item_id, payload.renter_id)


# объявлен до /rentals/{rental_id}, иначе путь перехватит он
@app.get("/rentals/overdue-returns", response_model=List[RentalOut])
def overdue_returns(db: Session = Depends(get_db)):
    return find_overdue_returns(db)


@app.get("/rentals/{rental_id}", response_model=RentalOut)
def read_rental(rental_id: int, db: Session = Depends(get_db)):
    return get_rental(db, rental_id)


@app.post("/rentals/{rental_id}/evidence", response_model=EvidenceOut, status_code=201)
def add_evidence(rental_id: int, payload: EvidenceIn, db: Session = Depends(get_db)):
    data = payload.model_dump()
    phase, party, kind = data.pop("phase"), data.pop("party_role"), data.pop("kind")
    return append_evidence(db, rental_id, phase, party, kind, **data)


@app.get("/rentals/{rental_id}/phases/{phase}/progress", response_model=PhaseProgressOut)
def phase_progress(rental_id: int, phase: EvidencePhase, db: Session = Depends(get_db)):
    get_rental(db, rental_id)
    parties = {}
    for party in PartyRole:
        progress = evidence_progress(list_evidence(db, rental_id, phase, party))
        parties[party.value] = PartyProgressOut(
            photos=progress.photos, videos=progress.videos, satisfied=progress.satisfied,
        )
    return PhaseProgressOut(rental_id=rental_id, phase=phase, **parties)


@app.post("/rentals/{rental_id}/phases/{phase}/evidence-uploaded", response_model=StatusOut)
def evidence_uploaded(rental_id: int, phase: EvidencePhase, payload: EvidenceUploadedIn,
                      db: Session = Depends(get_db)):
    status = on_evidence_uploaded(db, rental_id, phase, payload.party_id)
    return StatusOut(rental_id=rental_id, status=status.value if isinstance(status, RentalStatus) else status)


@app.post("/rentals/{rental_id}/return-finished", response_model=FlowDecisionOut)
def return_finished(rental_id: int, payload: ReturnFinishedIn, db: Session = Depends(get_db)):
    decision = review_gate.on_return_phase_actor_finished(db, rental_id, payload.party_role)
    return _decision_out(decision)


@app.post("/rentals/{rental_id}/review-flow/{party_role}/steps/{index}", response_model=StepOut)
def review_flow_step(rental_id: int, party_role: PartyRole, index: int, payload: StepIn,
                           db: Session = Depends(get_db)):
    decision = review_gate.evaluate(db, rental_id, EvidencePhase.RETURN, party_role)
    result = review_gate.submit_step(db, decision, index, payload.rating, payload.comment)
    return StepOut(
        review=_review_out(result.review, result.created),
        next_index=result.next_index,
        finished=result.finished,
    )


@app.post("/rentals/{rental_id}/reviews", response_model=ReviewOut, status_code=201)
def create_review(rental_id: int, payload: ReviewIn, response: Response, db: Session = Depends(get_db)):
    target = ReviewTarget(kind=payload.target.kind, reviewee_id=payload.target.reviewee_id, role=payload.target.role)
    outcome = submit_review(db, rental_id, payload.reviewer_id, target, payload.rating, payload.comment)
    if not outcome.created:
        response.status_code = 200
    return _review_out(outcome.review, outcome.created)


@app.get("/items/{item_id}/review-totals", response_model=ReviewTotalsOut)
def item_totals(item_id: int, db: Session = Depends(get_db)):
    return _totals_out(item_review_totals(db, item_id))


@app.get("/users/{user_id}/review-totals/{role}", response_model=ReviewTotalsOut)
def user_totals(user_id: int, role: PartyRole, db: Session = Depends(get_db)):
    return _totals_out(party_review_totals(db, user_id, role))

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict

from models.evidence import EvidencePhase, EvidenceKind, PartyRole
from services.review_validator import ReviewKind


class UserIn(BaseModel):
    name: str
    telegram_id: Optional[int] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    telegram_id: Optional[int] = None


class ItemIn(BaseModel):
    owner_id: int
    name: str
    description: Optional[str] = None


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    description: Optional[str] = None


class RentalIn(BaseModel):
    item_id: int
    renter_id: int


class RentalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    owner_id: int
    renter_id: int
    status: str
    version: int
    started_at: Optional[datetime] = None
    started_by: Optional[int] = None
    ended_at: Optional[datetime] = None
    ended_by: Optional[int] = None


class EvidenceIn(BaseModel):
    phase: EvidencePhase
    party_role: PartyRole
    kind: EvidenceKind
    storage_ref: str
    seq: Optional[int] = None
    captured_at: Optional[datetime] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    mime_type: Optional[str] = None
    uploader_id: Optional[int] = None


class EvidenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rental_id: int
    phase: EvidencePhase
    party_role: PartyRole
    kind: EvidenceKind
    seq: int
    captured_at: datetime
    lat: Optional[float] = None
    lng: Optional[float] = None
    storage_ref: str
    mime_type: Optional[str] = None


class PartyProgressOut(BaseModel):
    photos: int
    videos: int
    satisfied: bool


class PhaseProgressOut(BaseModel):
    rental_id: int
    phase: EvidencePhase
    owner: PartyProgressOut
    renter: PartyProgressOut


class EvidenceUploadedIn(BaseModel):
    party_id: Optional[int] = None


class StatusOut(BaseModel):
    rental_id: int
    status: str


class ReturnFinishedIn(BaseModel):
    party_role: PartyRole


class ReviewTargetIn(BaseModel):
    kind: ReviewKind
    reviewee_id: Optional[int] = None
    role: Optional[PartyRole] = None


class ReviewTargetOut(ReviewTargetIn):
    pass


class FlowDecisionOut(BaseModel):
    kind: str
    rental_id: int
    reviewer_id: Optional[int] = None
    steps: List[ReviewTargetOut] = []
    next_index: Optional[int] = None
    finished: bool = False
    reason: Optional[str] = None


class ReviewIn(BaseModel):
    reviewer_id: int
    target: ReviewTargetIn
    # тип и диапазон 1..5 проверяет валидатор
    rating: Any
    comment: Optional[str] = None


class StepIn(BaseModel):
    rating: Any
    comment: Optional[str] = None


class ReviewOut(BaseModel):
    id: int
    rental_id: int
    kind: ReviewKind
    reviewer_id: int
    reviewee_id: Optional[int] = None
    role: Optional[PartyRole] = None
    rating: int
    comment: Optional[str] = None
    created: bool


class StepOut(BaseModel):
    review: ReviewOut
    next_index: Optional[int] = None
    finished: bool


class ReviewTotalsOut(BaseModel):
    total_reviews: int
    average_rating: float
    star_1_count: int
    star_2_count: int
    star_3_count: int
    star_4_count: int
    star_5_count: int

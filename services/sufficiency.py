from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from config import MIN_PHOTOS_PER_PHASE, MIN_VIDEOS_PER_PHASE
from models.evidence import EvidenceKind, EvidencePhase, PartyRole
from services.evidence import list_evidence


@dataclass(frozen=True)
class EvidenceProgress:
    photos: int
    videos: int

    # фото и видео не суммируются: нужно одно видео или три фото
    @property
    def satisfied(self) -> bool:
        return self.videos >= MIN_VIDEOS_PER_PHASE or self.photos >= MIN_PHOTOS_PER_PHASE

    @property
    def photos_missing(self) -> int:
        return max(MIN_PHOTOS_PER_PHASE - self.photos, 0)


def evidence_progress(records: Iterable) -> EvidenceProgress:
    photos = 0
    videos = 0
    for record in records:
        if record.kind is EvidenceKind.PHOTO:
            photos += 1
        elif record.kind is EvidenceKind.VIDEO:
            videos += 1
    return EvidenceProgress(photos=photos, videos=videos)


def is_sufficient(records: Iterable) -> bool:
    return evidence_progress(records).satisfied


def is_satisfied(db: Session, rental_id: int, phase: EvidencePhase, party: PartyRole) -> bool:
    return is_sufficient(list_evidence(db, rental_id, phase, party))

from datetime import datetime
from typing import List, Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from models.evidence import EvidenceRecord, EvidencePhase, EvidenceKind, PartyRole
from models.rental import Rental
from services.rentals import get_rental

DEFAULT_MIME_TYPES = {
    EvidenceKind.PHOTO: "image/jpeg",
    EvidenceKind.VIDEO: "video/mp4",
}


def list_evidence(db: Session, rental_id: int, phase: EvidencePhase, party: PartyRole) -> List[EvidenceRecord]:
    return (
        db.query(EvidenceRecord)
        .filter(
            EvidenceRecord.rental_id == rental_id,
            EvidenceRecord.phase == phase,
            EvidenceRecord.party_role == party,
        )
        .order_by(EvidenceRecord.seq, EvidenceRecord.id)
        .all()
    )


def _next_seq(db: Session, rental_id: int, phase: EvidencePhase, party: PartyRole) -> int:
    current = (
        db.query(func.max(EvidenceRecord.seq))
        .filter(
            EvidenceRecord.rental_id == rental_id,
            EvidenceRecord.phase == phase,
            EvidenceRecord.party_role == party,
        )
        .scalar()
    )
    return (current or 0) + 1


def append_evidence(
        db: Session,
        rental_id: int,
        phase: EvidencePhase,
        party: PartyRole,
        kind: EvidenceKind,
        storage_ref: str,
        seq: Optional[int] = None,
        captured_at: Optional[datetime] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        mime_type: Optional[str] = None,
        uploader_id: Optional[int] = None,
) -> EvidenceRecord:
    """Сохраняет один снимок и фиксирует транзакцию. Статус пересчитывает вызывающий код."""
    get_rental(db, rental_id)

    record = EvidenceRecord(
        rental_id=rental_id,
        phase=phase,
        party_role=party,
        kind=kind,
        seq=seq if seq is not None else _next_seq(db, rental_id, phase, party),
        captured_at=captured_at or datetime.utcnow(),
        lat=lat,
        lng=lng,
        storage_ref=storage_ref,
        mime_type=mime_type or DEFAULT_MIME_TYPES[kind],
        uploader_id=uploader_id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        f"Evidence stored: rental={rental_id}, phase={phase.value}, party={party.value}, "
        f"kind={kind.value}, seq={record.seq}"
    )
    return record


def party_role_of(rental: Rental, party_id: int) -> Optional[PartyRole]:
    # при аренде у самого себя сначала возвращается владелец;
    # бот в этом случае спрашивает сторону отдельно
    if party_id == rental.owner_id:
        return PartyRole.OWNER
    if party_id == rental.renter_id:
        return PartyRole.RENTER
    return None


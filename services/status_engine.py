from datetime import datetime
from typing import Optional, Union

from loguru import logger
from sqlalchemy.orm import Session

from config import STATUS_WRITE_MAX_ATTEMPTS
from models.evidence import EvidencePhase, PartyRole
from models.rental import RentalStatus
from services.errors import StatusConflict
from services.rentals import get_rental, set_status, stamp_completion
from services.sufficiency import is_satisfied

# только вперёд: устаревший пересчёт не откатывает статус назад
TRANSITIONS = {
    RentalStatus.CONFIRMED: frozenset({
        RentalStatus.AWAITING_CHECKIN_OWNER,
        RentalStatus.AWAITING_CHECKIN_RENTER,
        RentalStatus.ACTIVE,
    }),
    RentalStatus.AWAITING_CHECKIN_OWNER: frozenset({RentalStatus.ACTIVE}),
    RentalStatus.AWAITING_CHECKIN_RENTER: frozenset({RentalStatus.ACTIVE}),
    RentalStatus.ACTIVE: frozenset({
        RentalStatus.AWAITING_CHECKOUT_OWNER,
        RentalStatus.AWAITING_CHECKOUT_RENTER,
        RentalStatus.COMPLETED,
    }),
    RentalStatus.AWAITING_CHECKOUT_OWNER: frozenset({RentalStatus.COMPLETED}),
    RentalStatus.AWAITING_CHECKOUT_RENTER: frozenset({RentalStatus.COMPLETED}),
    RentalStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUS = {
    EvidencePhase.START: RentalStatus.ACTIVE,
    EvidencePhase.RETURN: RentalStatus.COMPLETED,
}


def decide_status(phase: EvidencePhase, owner_done: bool, renter_done: bool) -> Optional[RentalStatus]:
    """Целевой статус этапа. awaiting_* называет сторону, которую ещё ждём; None: не менять."""
    if phase is EvidencePhase.START:
        if owner_done and renter_done:
            return RentalStatus.ACTIVE
        if owner_done:
            return RentalStatus.AWAITING_CHECKIN_RENTER
        if renter_done:
            return RentalStatus.AWAITING_CHECKIN_OWNER
        return RentalStatus.CONFIRMED

    if phase is EvidencePhase.RETURN:
        if owner_done and renter_done:
            return RentalStatus.COMPLETED
        if owner_done:
            return RentalStatus.AWAITING_CHECKOUT_RENTER
        if renter_done:
            return RentalStatus.AWAITING_CHECKOUT_OWNER
        # никто не закончил возврат: остаёмся в active
        return None

    raise ValueError(f"Unknown phase: {phase}")


def can_transition(current: RentalStatus, target: RentalStatus) -> bool:
    return target in TRANSITIONS[current]


def recompute_status(db: Session, rental_id: int, phase: EvidencePhase,
                     party_id: Optional[int] = None) -> Union[RentalStatus, str]:
    """
    Пересчитывает статус по материалам обеих сторон и пишет его через compare-and-set.

    При проигранной гонке перечитывает аренду и решает заново. Для статусов вне
    сценария передачи возвращает исходную строку без изменений.
    """
    for attempt in range(1, STATUS_WRITE_MAX_ATTEMPTS + 1):
        rental = get_rental(db, rental_id)
        try:
            current = RentalStatus(rental.status)
        except ValueError:
            logger.warning(f"Rental {rental_id}: status '{rental.status}' is outside the hand-off flow, skipped")
            return rental.status

        owner_done = is_satisfied(db, rental_id, phase, PartyRole.OWNER)
        renter_done = is_satisfied(db, rental_id, phase, PartyRole.RENTER)
        target = decide_status(phase, owner_done, renter_done)

        if target is None or target == current:
            return current

        if not can_transition(current, target):
            logger.info(
                f"Rental {rental_id}: {phase.value} phase proposes {target.value} "
                f"from {current.value}, transition discarded"
            )
            return current

        if set_status(db, rental_id, target, expected=current):
            if target is TERMINAL_STATUS[phase]:
                stamp_completion(db, rental_id, phase, datetime.utcnow(), party_id)
            db.commit()
            logger.info(f"Rental {rental_id}: {current.value} -> {target.value} (phase={phase.value}, by={party_id})")
            if target is RentalStatus.ACTIVE:
                # материалы возврата могли прийти раньше, чем закончилось начало
                return recompute_status(db, rental_id, EvidencePhase.RETURN, party_id)
            return target

        db.rollback()
        logger.warning(f"Rental {rental_id}: status changed concurrently, recomputing (attempt {attempt})")

    raise StatusConflict(rental_id, STATUS_WRITE_MAX_ATTEMPTS)


def on_evidence_uploaded(db: Session, rental_id: int, phase: EvidencePhase,
                         party_id: Optional[int] = None) -> Union[RentalStatus, str]:
    return recompute_status(db, rental_id, phase, party_id)

from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from config import RETURN_OVERDUE_HOURS
from models.evidence import EvidencePhase
from models.item import Item
from models.rental import Rental, RentalStatus
from models.user import User
from services.errors import RentalNotFound, ValidationRejection


def get_rental(db: Session, rental_id: int) -> Rental:
    # populate_existing: статус мог поменять другой клиент, кэш сессии не годится
    rental = db.get(Rental, rental_id, populate_existing=True)
    if rental is None:
        raise RentalNotFound(rental_id)
    return rental


def set_status(db: Session, rental_id: int, new_status: RentalStatus,
               expected: Optional[RentalStatus] = None) -> bool:
    """
    Условная запись статуса, без commit.

    С ``expected`` строка обновляется, только если статус всё ещё равен ему;
    False означает, что аренду уже сдвинул кто-то другой. version растёт при каждой записи.
    """
    query = db.query(Rental).filter(Rental.id == rental_id)
    if expected is not None:
        query = query.filter(Rental.status == expected.value)

    updated = query.update(
        {Rental.status: new_status.value, Rental.version: Rental.version + 1},
        synchronize_session=False,
    )
    return updated == 1


def stamp_completion(db: Session, rental_id: int, phase: EvidencePhase,
                     timestamp: datetime, party_id: Optional[int]) -> None:
    if phase is EvidencePhase.START:
        values = {Rental.started_at: timestamp, Rental.started_by: party_id}
    elif phase is EvidencePhase.RETURN:
        values = {Rental.ended_at: timestamp, Rental.ended_by: party_id}
    else:
        raise ValueError(f"Unknown phase: {phase}")

    db.query(Rental).filter(Rental.id == rental_id).update(values, synchronize_session=False)


def create_rental(db: Session, item_id: int, renter_id: int) -> Rental:
    item = db.query(Item).filter(Item.id == item_id).first()
    if not item:
        raise ValidationRejection("item_not_found", f"item {item_id} not found")
    renter = db.query(User).filter(User.id == renter_id).first()
    if not renter:
        raise ValidationRejection("renter_not_found", f"user {renter_id} not found")

    rental = Rental(
        item_id=item.id,
        owner_id=item.owner_id,
        renter_id=renter.id,
        status=RentalStatus.CONFIRMED.value,
    )
    db.add(rental)
    db.commit()
    db.refresh(rental)
    logger.info(f"Rental {rental.id} created: item={item.id}, owner={item.owner_id}, renter={renter.id}")
    return rental


OPEN_RETURN_STATUSES = (
    RentalStatus.ACTIVE.value,
    RentalStatus.AWAITING_CHECKOUT_OWNER.value,
    RentalStatus.AWAITING_CHECKOUT_RENTER.value,
)


def find_overdue_returns(db: Session, now: Optional[datetime] = None,
                         hours: int = RETURN_OVERDUE_HOURS) -> List[Rental]:
    # только отчёт: статус просроченных аренд не меняется
    now = now or datetime.utcnow()
    threshold = now - timedelta(hours=hours)
    rentals = (
        db.query(Rental)
        .filter(
            Rental.status.in_(OPEN_RETURN_STATUSES),
            Rental.started_at.isnot(None),
            Rental.started_at < threshold,
        )
        .order_by(Rental.started_at)
        .all()
    )
    for rental in rentals:
        logger.warning(f"Rental {rental.id} overdue for return: status={rental.status}, started_at={rental.started_at}")
    return rentals

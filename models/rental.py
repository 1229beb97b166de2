from datetime import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from database import Base
from sqlalchemy.orm import relationship
import enum


class RentalStatus(str, enum.Enum):
    """Статусы аренды. Значения пишутся в БД как есть и читаются внешними клиентами."""

    CONFIRMED = "confirmed"
    AWAITING_CHECKIN_OWNER = "awaiting_checkin_owner"
    AWAITING_CHECKIN_RENTER = "awaiting_checkin_renter"
    ACTIVE = "active"
    AWAITING_CHECKOUT_OWNER = "awaiting_checkout_owner"
    AWAITING_CHECKOUT_RENTER = "awaiting_checkout_renter"
    COMPLETED = "completed"


class Rental(Base):
    __tablename__ = "rentals"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    renter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(32), nullable=False, default=RentalStatus.CONFIRMED.value)
    # Счётчик версий: увеличивается при каждой записи статуса
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    started_at = Column(DateTime, nullable=True)
    started_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    ended_at = Column(DateTime, nullable=True)
    ended_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    item = relationship("Item")
    owner = relationship("User", foreign_keys=[owner_id])
    renter = relationship("User", foreign_keys=[renter_id])

    @property
    def is_self_rental(self) -> bool:
        return self.owner_id == self.renter_id

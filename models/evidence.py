from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, Index
from database import Base
from sqlalchemy.orm import relationship
import enum


class EvidencePhase(enum.Enum):
    START = "start"
    RETURN = "return"


class PartyRole(enum.Enum):
    OWNER = "owner"
    RENTER = "renter"

    @property
    def other(self) -> "PartyRole":
        return PartyRole.RENTER if self is PartyRole.OWNER else PartyRole.OWNER


class EvidenceKind(enum.Enum):
    PHOTO = "photo"
    VIDEO = "video"


class EvidenceRecord(Base):
    """Одна единица доказательства (фото или видео). После записи не изменяется."""

    __tablename__ = "rental_evidence"
    __table_args__ = (
        Index("ix_rental_evidence_key", "rental_id", "phase", "party_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False)
    phase = Column(Enum(EvidencePhase), nullable=False)
    party_role = Column(Enum(PartyRole), nullable=False)
    kind = Column(Enum(EvidenceKind), nullable=False)
    seq = Column(Integer, nullable=False, default=1)
    captured_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    storage_ref = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    uploader_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    rental = relationship("Rental", backref="evidence")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models.evidence import EvidenceKind
from models.item import Item
from models.rental import Rental, RentalStatus
from models.user import User
from services.evidence import append_evidence


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(name, telegram_id=None):
        user = User(name=name, telegram_id=telegram_id, registered=True)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_rental(db):
    def _make(owner, renter, status=RentalStatus.CONFIRMED):
        item = Item(owner_id=owner.id, name="Drill")
        db.add(item)
        db.commit()
        rental = Rental(item_id=item.id, owner_id=owner.id, renter_id=renter.id, status=status.value)
        db.add(rental)
        db.commit()
        db.refresh(rental)
        return rental
    return _make


@pytest.fixture
def owner(make_user):
    return make_user("Olga", telegram_id=1001)


@pytest.fixture
def renter(make_user):
    return make_user("Nikita", telegram_id=1002)


@pytest.fixture
def rental(make_rental, owner, renter):
    return make_rental(owner, renter)


@pytest.fixture
def upload(db):
    """Store ``photos`` photos and ``videos`` videos for one (rental, phase, party)."""
    def _upload(rental_id, phase, party, photos=0, videos=0):
        for n in range(photos):
            append_evidence(db, rental_id, phase, party, EvidenceKind.PHOTO, storage_ref=f"{phase.value}/{party.value}/p{n}.jpg")
        for n in range(videos):
            append_evidence(db, rental_id, phase, party, EvidenceKind.VIDEO, storage_ref=f"{phase.value}/{party.value}/v{n}.mp4")
    return _upload

"""
Telegram handlers driven with mocked messages and a real in-memory FSM.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from handlers import evidence, menu, reviews
from models.evidence import EvidencePhase, PartyRole
from models.review import ItemReview
from models.user import User
from services.rentals import get_rental


@pytest.fixture(autouse=True)
def bot_db(monkeypatch, session_factory):
    for module in (menu, evidence, reviews):
        monkeypatch.setattr(module, "SessionLocal", session_factory)


@pytest.fixture
def state():
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=1, user_id=1))


def make_message(telegram_id, text=None, photo=None, video=None):
    message = MagicMock()
    message.from_user.id = telegram_id
    message.from_user.full_name = "Test User"
    message.text = text
    message.photo = photo
    message.video = video
    message.date = None
    message.answer = AsyncMock()
    message.edit_text = AsyncMock()
    return message


def make_callback(telegram_id, data):
    callback = MagicMock()
    callback.from_user.id = telegram_id
    callback.data = data
    callback.message = make_message(telegram_id)
    callback.answer = AsyncMock()
    return callback


def last_text(message):
    return message.answer.call_args.args[0]


def test_start_registers_user(db, state):
    message = make_message(555)
    asyncio.run(menu.start_handler(message, state))

    user = db.query(User).filter(User.telegram_id == 555).first()
    assert user is not None
    assert user.name == "Test User"
    assert f"ID участника: {user.id}" in last_text(message)


def test_renter_uploads_start_photos(db, state, rental, renter):
    asyncio.run(evidence.process_rental_id(make_message(renter.telegram_id, text=str(rental.id)), state))
    data = asyncio.run(state.get_data())
    assert data["party_role"] == "renter"

    asyncio.run(evidence.process_phase(make_callback(renter.telegram_id, "phase:start"), state))
    assert asyncio.run(state.get_state()) == evidence.EvidenceStates.waiting_for_media.state

    for n in range(3):
        photo = MagicMock(file_id=f"photo-{n}")
        message = make_message(renter.telegram_id, photo=[photo])
        asyncio.run(evidence.process_media(message, state))

    assert "Материалов достаточно" in last_text(message)
    assert get_rental(db, rental.id).status == "awaiting_checkin_owner"


def test_done_without_enough_media_keeps_waiting(state, rental, owner, upload):
    upload(rental.id, EvidencePhase.START, PartyRole.OWNER, photos=1)
    asyncio.run(state.update_data(rental_id=rental.id, phase="start", party_role="owner", user_id=owner.id))
    asyncio.run(state.set_state(evidence.EvidenceStates.waiting_for_media))

    callback = make_callback(owner.telegram_id, "media_done")
    asyncio.run(evidence.process_done(callback, state))

    assert "Нужно ещё 2 фото" in last_text(callback.message)
    assert asyncio.run(state.get_state()) == evidence.EvidenceStates.waiting_for_media.state


def test_stranger_cannot_upload(state, rental, make_user):
    stranger = make_user("Stranger", telegram_id=777)
    message = make_message(stranger.telegram_id, text=str(rental.id))
    asyncio.run(evidence.process_rental_id(message, state))

    assert last_text(message) == "Вы не участвуете в этой аренде."
    assert asyncio.run(state.get_state()) is None


def test_return_done_starts_renter_review_flow(db, state, rental, renter, upload):
    upload(rental.id, EvidencePhase.RETURN, PartyRole.RENTER, videos=1)
    asyncio.run(state.update_data(rental_id=rental.id, phase="return", party_role="renter", user_id=renter.id))

    callback = make_callback(renter.telegram_id, "media_done")
    asyncio.run(evidence.process_done(callback, state))

    assert asyncio.run(state.get_state()) == reviews.ReviewStates.waiting_for_rating.state
    assert last_text(callback.message) == "Оцените вещь от 1 до 5:"

    asyncio.run(reviews.process_rating(make_callback(renter.telegram_id, "rate:5"), state))
    skip = make_callback(renter.telegram_id, "skip_comment")
    asyncio.run(reviews.skip_comment_callback(skip, state))

    assert db.query(ItemReview).count() == 1
    assert last_text(skip.message) == "Оцените владельца от 1 до 5:"
    assert asyncio.run(state.get_data())["step_index"] == 1

def choose_side(state, telegram_id, rental_id, side):
    asyncio.run(evidence.process_rental_id(make_message(telegram_id, text=str(rental_id)), state))
    asyncio.run(evidence.process_role(make_callback(telegram_id, f"role:{side}"), state))
    asyncio.run(evidence.process_phase(make_callback(telegram_id, "phase:start"), state))


def test_self_rental_asks_for_side(state, make_rental, owner):
    rental = make_rental(owner, owner)
    message = make_message(owner.telegram_id, text=str(rental.id))
    asyncio.run(evidence.process_rental_id(message, state))

    assert asyncio.run(state.get_state()) == evidence.EvidenceStates.waiting_for_role.state
    assert "За какую сторону" in last_text(message)


def test_self_rental_uploads_both_sides_to_active(db, state, make_rental, owner):
    rental = make_rental(owner, owner)

    choose_side(state, owner.telegram_id, rental.id, "owner")
    for n in range(3):
        asyncio.run(evidence.process_media(make_message(owner.telegram_id, photo=[MagicMock(file_id=f"p{n}")]), state))
    assert get_rental(db, rental.id).status == "awaiting_checkin_renter"

    choose_side(state, owner.telegram_id, rental.id, "renter")
    assert asyncio.run(state.get_data())["party_role"] == "renter"
    message = make_message(owner.telegram_id, video=MagicMock(file_id="v1"))
    asyncio.run(evidence.process_media(message, state))

    assert get_rental(db, rental.id).status == "active"
    assert "аренда идёт" in last_text(message)

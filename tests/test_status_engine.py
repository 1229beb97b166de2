"""
Tests for the rental status engine: transitions, idempotence, convergence
and protection against stale writes.
"""

from datetime import datetime, timedelta

import pytest

from models.evidence import EvidencePhase, PartyRole
from models.rental import RentalStatus
from services import status_engine
from services.errors import RentalNotFound, StatusConflict
from services.rentals import find_overdue_returns, get_rental, set_status
from services.status_engine import decide_status, on_evidence_uploaded, recompute_status

START = EvidencePhase.START
RETURN = EvidencePhase.RETURN


@pytest.mark.parametrize("phase, owner_done, renter_done, expected", [
    (START, True, True, RentalStatus.ACTIVE),
    (START, True, False, RentalStatus.AWAITING_CHECKIN_RENTER),
    (START, False, True, RentalStatus.AWAITING_CHECKIN_OWNER),
    (START, False, False, RentalStatus.CONFIRMED),
    (RETURN, True, True, RentalStatus.COMPLETED),
    (RETURN, True, False, RentalStatus.AWAITING_CHECKOUT_RENTER),
    (RETURN, False, True, RentalStatus.AWAITING_CHECKOUT_OWNER),
    (RETURN, False, False, None),
])
def test_decide_status_names_the_pending_party(phase, owner_done, renter_done, expected):
    assert decide_status(phase, owner_done, renter_done) is expected


def test_status_strings_are_stable():
    assert [s.value for s in RentalStatus] == [
        "confirmed",
        "awaiting_checkin_owner",
        "awaiting_checkin_renter",
        "active",
        "awaiting_checkout_owner",
        "awaiting_checkout_renter",
        "completed",
    ]


def test_start_phase_scenario(db, rental, owner, renter, upload):
    """Renter uploads 3 photos, then owner uploads 1 video."""
    upload(rental.id, START, PartyRole.RENTER, photos=3)
    status = on_evidence_uploaded(db, rental.id, START, renter.id)
    assert status is RentalStatus.AWAITING_CHECKIN_OWNER
    assert get_rental(db, rental.id).status == "awaiting_checkin_owner"

    upload(rental.id, START, PartyRole.OWNER, videos=1)
    status = on_evidence_uploaded(db, rental.id, START, owner.id)
    assert status is RentalStatus.ACTIVE

    stored = get_rental(db, rental.id)
    assert stored.status == "active"
    assert stored.started_at is not None
    assert stored.started_by == owner.id


def test_owner_first_then_renter(db, rental, owner, renter, upload):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    assert recompute_status(db, rental.id, START, owner.id) is RentalStatus.AWAITING_CHECKIN_RENTER

    upload(rental.id, START, PartyRole.RENTER, photos=3)
    assert recompute_status(db, rental.id, START, renter.id) is RentalStatus.ACTIVE
    assert get_rental(db, rental.id).started_by == renter.id


def test_partial_evidence_keeps_baseline(db, rental, upload):
    upload(rental.id, START, PartyRole.RENTER, photos=2)
    assert recompute_status(db, rental.id, START) is RentalStatus.CONFIRMED
    assert get_rental(db, rental.id).status == "confirmed"


def test_recompute_is_idempotent(db, rental, upload):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    first = recompute_status(db, rental.id, START)
    version = get_rental(db, rental.id).version

    second = recompute_status(db, rental.id, START)
    assert first is second is RentalStatus.AWAITING_CHECKIN_RENTER
    assert get_rental(db, rental.id).version == version


def test_return_phase_to_completed(db, rental, owner, renter, upload):
    upload(rental.id, START, PartyRole.OWNER, videos=1)
    upload(rental.id, START, PartyRole.RENTER, videos=1)
    recompute_status(db, rental.id, START)

    # никто ещё не начал возврат
    assert recompute_status(db, rental.id, RETURN) is RentalStatus.ACTIVE

    upload(rental.id, RETURN, PartyRole.RENTER, photos=3)
    assert recompute_status(db, rental.id, RETURN, renter.id) is RentalStatus.AWAITING_CHECKOUT_OWNER

    upload(rental.id, RETURN, PartyRole.OWNER, photos=4)
    assert recompute_status(db, rental.id, RETURN, owner.id) is RentalStatus.COMPLETED

    stored = get_rental(db, rental.id)
    assert stored.ended_by == owner.id
    assert stored.ended_at is not None


def test_no_regression_once_active(db, rental, upload):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    upload(rental.id, START, PartyRole.RENTER, photos=3)
    recompute_status(db, rental.id, START)
    upload(rental.id, RETURN, PartyRole.OWNER, photos=3)
    recompute_status(db, rental.id, RETURN)

    # повторный пересчёт начала не возвращает аренду назад
    assert recompute_status(db, rental.id, START) is RentalStatus.AWAITING_CHECKOUT_RENTER
    assert get_rental(db, rental.id).status == "awaiting_checkout_renter"


def test_stale_awaiting_target_is_discarded(db, make_rental, owner, renter, upload):
    """A start-phase view with only one party done must not overwrite an active rental."""
    rental = make_rental(owner, renter, status=RentalStatus.ACTIVE)
    upload(rental.id, START, PartyRole.OWNER, photos=3)

    assert recompute_status(db, rental.id, START) is RentalStatus.ACTIVE
    assert get_rental(db, rental.id).status == "active"


def test_completed_is_final(db, make_rental, owner, renter, upload):
    rental = make_rental(owner, renter, status=RentalStatus.COMPLETED)
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    upload(rental.id, RETURN, PartyRole.RENTER, photos=3)

    assert recompute_status(db, rental.id, START) is RentalStatus.COMPLETED
    assert recompute_status(db, rental.id, RETURN) is RentalStatus.COMPLETED
    assert get_rental(db, rental.id).status == "completed"


def test_return_evidence_before_start_completes_is_ignored(db, rental, upload):
    upload(rental.id, RETURN, PartyRole.RENTER, photos=3)
    assert recompute_status(db, rental.id, RETURN) is RentalStatus.CONFIRMED


def test_early_return_evidence_counts_once_active(db, rental, owner, renter, upload):
    """Both parties captured the return before the owner finished the start."""
    upload(rental.id, START, PartyRole.RENTER, photos=3)
    on_evidence_uploaded(db, rental.id, START, renter.id)
    upload(rental.id, RETURN, PartyRole.RENTER, photos=3)
    upload(rental.id, RETURN, PartyRole.OWNER, videos=1)
    assert on_evidence_uploaded(db, rental.id, RETURN, owner.id) is RentalStatus.AWAITING_CHECKIN_OWNER

    upload(rental.id, START, PartyRole.OWNER, videos=1)
    assert on_evidence_uploaded(db, rental.id, START, owner.id) is RentalStatus.COMPLETED

    stored = get_rental(db, rental.id)
    assert stored.status == "completed"
    assert stored.started_by == owner.id
    assert stored.ended_by == owner.id


def test_early_partial_return_evidence_moves_to_awaiting(db, rental, upload):
    upload(rental.id, RETURN, PartyRole.RENTER, photos=3)
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    upload(rental.id, START, PartyRole.RENTER, photos=3)

    assert recompute_status(db, rental.id, START) is RentalStatus.AWAITING_CHECKOUT_OWNER
    assert get_rental(db, rental.id).started_at is not None


def test_convergence_from_two_sessions(session_factory, rental, upload):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    upload(rental.id, START, PartyRole.RENTER, videos=1)

    owner_db = session_factory()
    renter_db = session_factory()
    try:
        assert recompute_status(renter_db, rental.id, START) is RentalStatus.ACTIVE
        assert recompute_status(owner_db, rental.id, START) is RentalStatus.ACTIVE
        assert get_rental(owner_db, rental.id).status == "active"
    finally:
        owner_db.close()
        renter_db.close()


def test_set_status_compare_and_set(db, rental):
    assert not set_status(db, rental.id, RentalStatus.ACTIVE, expected=RentalStatus.AWAITING_CHECKIN_OWNER)
    db.rollback()
    assert get_rental(db, rental.id).status == "confirmed"

    assert set_status(db, rental.id, RentalStatus.ACTIVE, expected=RentalStatus.CONFIRMED)
    db.commit()
    stored = get_rental(db, rental.id)
    assert stored.status == "active"
    assert stored.version == 2


def test_concurrent_writer_wins_and_recompute_rereads(db, session_factory, rental, owner, upload, monkeypatch):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    upload(rental.id, START, PartyRole.RENTER, photos=3)

    real_set_status = status_engine.set_status
    calls = []

    def racing_set_status(session, rental_id, new_status, expected=None):
        calls.append(new_status)
        if len(calls) == 1:
            # второй клиент успевает записать статус первым
            other = session_factory()
            real_set_status(other, rental_id, RentalStatus.ACTIVE, expected=expected)
            other.commit()
            other.close()
            return False
        return real_set_status(session, rental_id, new_status, expected)

    monkeypatch.setattr(status_engine, "set_status", racing_set_status)

    assert recompute_status(db, rental.id, START, owner.id) is RentalStatus.ACTIVE
    assert calls == [RentalStatus.ACTIVE]
    assert get_rental(db, rental.id).version == 2


def test_conflict_after_max_attempts(db, rental, upload, monkeypatch):
    upload(rental.id, START, PartyRole.OWNER, photos=3)
    monkeypatch.setattr(status_engine, "set_status", lambda *args, **kwargs: False)

    with pytest.raises(StatusConflict):
        recompute_status(db, rental.id, START)
    assert get_rental(db, rental.id).status == "confirmed"


def test_status_outside_flow_is_left_alone(db, rental, upload):
    rental.status = "pending_payment"
    db.commit()
    upload(rental.id, START, PartyRole.OWNER, photos=3)

    assert recompute_status(db, rental.id, START) == "pending_payment"
    assert get_rental(db, rental.id).status == "pending_payment"


def test_unknown_rental(db):
    with pytest.raises(RentalNotFound):
        recompute_status(db, 999, START)


def test_overdue_returns_are_only_reported(db, make_rental, owner, renter):
    now = datetime(2026, 5, 1, 12, 0)
    overdue = make_rental(owner, renter, status=RentalStatus.ACTIVE)
    overdue.started_at = now - timedelta(days=5)
    recent = make_rental(owner, renter, status=RentalStatus.AWAITING_CHECKOUT_OWNER)
    recent.started_at = now - timedelta(hours=1)
    done = make_rental(owner, renter, status=RentalStatus.COMPLETED)
    done.started_at = now - timedelta(days=10)
    db.commit()

    found = find_overdue_returns(db, now=now, hours=72)
    assert [r.id for r in found] == [overdue.id]
    assert get_rental(db, overdue.id).status == "active"

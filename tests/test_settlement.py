from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from mutual_aid.models import AuditLog, HelpActivityStatus, HelpRole, LiveParty, MatchStatus
from mutual_aid.services import matching, settlement
from mutual_aid.utils.errors import NotFound, PreconditionFailed, Unauthorized


@pytest.fixture
def live_match(db_session, make_giver, make_receiver):
    giver, offer = make_giver()
    receiver, request = make_receiver()
    match = matching.create_match(
        db_session,
        giver_id=giver.id,
        receiver_id=receiver.id,
        help_activity_id=request.id,
        matched_by="user:1",
    )
    return giver, receiver, offer, request, match


def test_confirm_sent_is_idempotent(db_session, live_match):
    giver, _, _, _, match = live_match

    first = settlement.confirm_sent(db_session, match.id, giver.id)
    sent_at = first.sent_at
    second = settlement.confirm_sent(db_session, match.id, giver.id)

    assert second.status == MatchStatus.AWAITING_CONFIRMATION
    assert second.sent_at == sent_at
    events = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "PAYMENT_SENT_CONFIRMED")
    ).all()
    assert len(events) == 1


def test_only_the_giver_confirms_sent(db_session, live_match):
    _, receiver, _, _, match = live_match

    with pytest.raises(Unauthorized):
        settlement.confirm_sent(db_session, match.id, receiver.id)


def test_unknown_match(db_session, live_match):
    giver = live_match[0]
    with pytest.raises(NotFound):
        settlement.confirm_sent(db_session, 12345, giver.id)


def test_receiver_cannot_confirm_before_payment_sent(db_session, live_match):
    _, receiver, _, _, match = live_match

    with pytest.raises(PreconditionFailed) as exc:
        settlement.confirm_received(db_session, match.id, receiver.id)
    assert exc.value.code == "PAYMENT_NOT_SENT"


def test_receiver_confirmation_completes_match(db_session, live_match):
    giver, receiver, offer, request, match = live_match
    completed_at = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
    settlement.confirm_sent(db_session, match.id, giver.id)

    done = settlement.confirm_received(db_session, match.id, receiver.id, reference_time=completed_at)
    again = settlement.confirm_received(db_session, match.id, receiver.id)

    assert done.status == MatchStatus.COMPLETED
    assert again.completed_at == completed_at
    assert done.completed_by == f"user:{receiver.id}"
    db_session.refresh(offer)
    db_session.refresh(request)
    assert offer.status == HelpActivityStatus.COMPLETED
    assert request.status == HelpActivityStatus.COMPLETED
    # Package pkg-2 matures five days after the payment is acknowledged.
    assert offer.maturity_date == completed_at + timedelta(days=5)


def test_only_the_receiver_confirms_received(db_session, live_match):
    giver, _, _, _, match = live_match
    settlement.confirm_sent(db_session, match.id, giver.id)

    with pytest.raises(Unauthorized):
        settlement.confirm_received(db_session, match.id, giver.id)


def test_operator_completes_match_never_marked_sent(db_session, live_match):
    _, _, offer, request, match = live_match
    verified_at = datetime(2026, 5, 2, 8, 30, tzinfo=UTC)

    done = settlement.operator_confirm(
        db_session, match.id, operator="apikey:ops", reference_time=verified_at
    )

    assert done.status == MatchStatus.COMPLETED
    assert done.sent_at == verified_at
    assert done.completed_at == verified_at
    assert done.completed_by == "apikey:ops"
    db_session.refresh(offer)
    db_session.refresh(request)
    assert offer.status == HelpActivityStatus.COMPLETED
    assert request.status == HelpActivityStatus.COMPLETED
    assert offer.maturity_date == verified_at + timedelta(days=5)


def test_operator_confirm_keeps_declared_sent_time(db_session, live_match):
    giver, _, _, _, match = live_match
    sent_at = datetime(2026, 5, 2, 8, 0, tzinfo=UTC)
    settlement.confirm_sent(db_session, match.id, giver.id, reference_time=sent_at)

    done = settlement.operator_confirm(
        db_session, match.id, operator="apikey:ops", reference_time=sent_at + timedelta(hours=1)
    )

    assert done.sent_at == sent_at


def test_operator_confirm_is_idempotent(db_session, live_match):
    giver, _, _, _, match = live_match
    settlement.confirm_sent(db_session, match.id, giver.id)

    first = settlement.operator_confirm(db_session, match.id, operator="apikey:ops")
    second = settlement.operator_confirm(db_session, match.id, operator="apikey:other")

    assert first.status == second.status == MatchStatus.COMPLETED
    assert second.completed_by == "apikey:ops"


def test_completed_match_frees_both_parties(db_session, live_match, make_receiver):
    giver, receiver, _, _, match = live_match
    settlement.confirm_sent(db_session, match.id, giver.id)
    settlement.operator_confirm(db_session, match.id, operator="apikey:ops")
    other, other_request = make_receiver("other")

    next_match = matching.create_match(
        db_session,
        giver_id=receiver.id,
        receiver_id=other.id,
        help_activity_id=other_request.id,
        matched_by="user:1",
    )

    assert next_match.status == MatchStatus.PENDING


def test_manual_match_confirmation_flow(db_session, make_receiver):
    receiver, request = make_receiver()
    manual = matching.create_manual_match(
        db_session,
        user_id=receiver.id,
        role=HelpRole.RECEIVER,
        amount="100",
        counterparty=matching.Counterparty(name="Cash Donor", phone="+237 650 00 00 01"),
        created_by="apikey:ops",
    )

    with pytest.raises(Unauthorized):
        settlement.confirm_manual(db_session, manual.id, receiver.id + 1000)

    confirmed = settlement.confirm_manual(db_session, manual.id, receiver.id)
    repeated = settlement.confirm_manual(db_session, manual.id, receiver.id)
    assert confirmed.status == repeated.status == MatchStatus.AWAITING_CONFIRMATION

    completed = settlement.operator_confirm_manual(db_session, manual.id, operator="apikey:ops")
    assert completed.status == MatchStatus.COMPLETED
    assert completed.completed_at is not None
    db_session.refresh(request)
    assert request.status == HelpActivityStatus.COMPLETED


def test_unknown_manual_match(db_session):
    with pytest.raises(NotFound):
        settlement.operator_confirm_manual(db_session, 77, operator="apikey:ops")


def test_completion_releases_live_slots(db_session, live_match):
    giver, receiver, _, _, match = live_match
    held = db_session.scalars(select(LiveParty).where(LiveParty.payment_match_id == match.id)).all()
    assert sorted((row.user_id, row.role.value) for row in held) == sorted(
        (user_id, role.value) for user_id in (giver.id, receiver.id) for role in HelpRole
    )

    settlement.operator_confirm(db_session, match.id, operator="apikey:ops")

    assert db_session.scalars(select(LiveParty)).all() == []

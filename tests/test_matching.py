from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from mutual_aid.models import (
    AUTO_MATCHER,
    HelpActivityStatus,
    HelpRole,
    MatchStatus,
    Paired,
    PaymentMatch,
)
from mutual_aid.services import bans, matching, registry
from mutual_aid.utils.errors import Conflict, NotFound, PreconditionFailed, ValidationError


def _match(db_session, giver, receiver, request, **kwargs):
    return matching.create_match(
        db_session,
        giver_id=giver.id,
        receiver_id=receiver.id,
        help_activity_id=request.id,
        matched_by=kwargs.pop("matched_by", "user:1"),
        **kwargs,
    )


def test_pools_are_oldest_first(db_session, make_giver, make_receiver):
    _, first_offer = make_giver("first")
    _, second_offer = make_giver("second")
    receiver, request = make_receiver()

    givers = matching.available_givers(db_session)
    receivers = matching.pending_receivers(db_session)

    giver_ids = [activity.id for activity in givers]
    assert giver_ids.index(first_offer.id) < giver_ids.index(second_offer.id)
    assert [activity.id for activity in receivers] == [request.id]


def test_create_match_pairs_both_activities(db_session, make_giver, make_receiver):
    giver, offer = make_giver()
    receiver, request = make_receiver()
    created_at = datetime(2026, 3, 1, 8, 30, tzinfo=UTC)

    match = _match(db_session, giver, receiver, request, reference_time=created_at)

    assert match.status == MatchStatus.PENDING
    assert match.amount == Decimal("100.00")
    assert match.payment_deadline == created_at + timedelta(hours=6)
    assert match.giver_activity_id == offer.id
    for activity in (offer, request):
        db_session.refresh(activity)
        assert activity.status == HelpActivityStatus.MATCHED
        assert activity.admin_approved is True
        assert activity.matched_at == created_at
        assert activity.payment_deadline == created_at + timedelta(hours=6)
    assert request.variant == Paired(giver_id=giver.id, receiver_id=receiver.id)
    assert request.counterparty_id == giver.id
    assert offer.counterparty_id == receiver.id


def test_deadline_is_stored_not_recomputed(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    receiver, request = make_receiver()
    created_at = datetime(2026, 3, 1, 8, 30, tzinfo=UTC)
    match = _match(db_session, giver, receiver, request, reference_time=created_at)

    db_session.expire_all()
    reloaded = db_session.get(PaymentMatch, match.id)

    assert reloaded.payment_deadline == created_at + timedelta(hours=6)
    assert reloaded.payment_deadline.tzinfo is not None


def test_explicit_amount_overrides_activity_amount(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    receiver, request = make_receiver()

    match = _match(db_session, giver, receiver, request, amount="75.5")

    assert match.amount == Decimal("75.50")


@pytest.mark.parametrize("amount", ["0", "-5", "abc"])
def test_non_positive_amount_is_rejected(db_session, make_giver, make_receiver, amount):
    giver, _ = make_giver()
    receiver, request = make_receiver()

    with pytest.raises(ValidationError) as exc:
        _match(db_session, giver, receiver, request, amount=amount)
    assert exc.value.fields == ["amount"]


def test_same_party_is_rejected(db_session, make_receiver):
    receiver, request = make_receiver()

    with pytest.raises(ValidationError):
        _match(db_session, receiver, receiver, request)


def test_unknown_party(db_session, make_receiver, make_user):
    receiver, request = make_receiver()

    with pytest.raises(NotFound):
        matching.create_match(
            db_session, giver_id=9999, receiver_id=receiver.id, help_activity_id=request.id, matched_by="op"
        )


def test_activity_must_be_the_receivers_request(db_session, make_giver, make_receiver):
    giver, offer = make_giver()
    receiver, _ = make_receiver()

    with pytest.raises(ValidationError) as exc:
        _match(db_session, giver, receiver, offer)
    assert exc.value.code == "ACTIVITY_MISMATCH"


def test_banned_party_cannot_be_matched(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    receiver, request = make_receiver()
    bans.ban_user(db_session, giver.id, reason="missed deadline", banned_by="operator")

    with pytest.raises(PreconditionFailed) as exc:
        _match(db_session, giver, receiver, request)
    assert exc.value.code == "ACCOUNT_BANNED"


def test_giver_cannot_hold_two_live_matches(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    first_receiver, first_request = make_receiver("first")
    second_receiver, second_request = make_receiver("second")
    _match(db_session, giver, first_receiver, first_request)

    with pytest.raises(Conflict) as exc:
        _match(db_session, giver, second_receiver, second_request)

    assert exc.value.code == "PARTY_ALREADY_MATCHED"
    live = db_session.scalars(
        select(PaymentMatch).where(PaymentMatch.giver_id == giver.id)
    ).all()
    assert len(live) == 1
    db_session.refresh(second_request)
    assert second_request.status == HelpActivityStatus.PENDING


def test_request_matched_twice_conflicts(db_session, make_giver, make_receiver):
    first_giver, _ = make_giver("first")
    second_giver, _ = make_giver("second")
    receiver, request = make_receiver()
    _match(db_session, first_giver, receiver, request)

    with pytest.raises(Conflict) as exc:
        _match(db_session, second_giver, receiver, request)
    assert exc.value.code == "ACTIVITY_ALREADY_MATCHED"


def test_auto_match_without_receivers_is_a_no_op(db_session, make_giver):
    _, offer = make_giver()

    result = matching.auto_match(db_session)

    assert result.matches == []
    db_session.refresh(offer)
    assert offer.status == HelpActivityStatus.PENDING


def test_auto_match_pairs_oldest_giver_and_skips_self(db_session, make_user, make_giver, package):
    receiver = make_user("receiver")
    own_offer = registry.register_offer(db_session, receiver.id, package.id)
    request = registry.register_request(db_session, receiver.id, package.id)
    giver, offer = make_giver("giver")

    result = matching.auto_match(db_session)

    assert len(result.matches) == 1
    match = result.matches[0]
    assert match.giver_id == giver.id
    assert match.receiver_id == receiver.id
    assert match.help_activity_id == request.id
    assert match.matched_by == AUTO_MATCHER
    db_session.refresh(own_offer)
    assert own_offer.status == HelpActivityStatus.PENDING


def test_auto_match_never_pairs_a_giver_twice(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    first, _ = make_receiver("first")
    second, second_request = make_receiver("second")

    result = matching.auto_match(db_session)

    # The first receiver's own offer is the only other giver, and it is
    # already paired in this run, so the second request stays pending.
    assert [(m.giver_id, m.receiver_id) for m in result.matches] == [(giver.id, first.id)]
    db_session.refresh(second_request)
    assert second_request.status == HelpActivityStatus.PENDING


def test_auto_match_run_twice_creates_nothing_new(db_session, make_giver, make_receiver):
    make_giver()
    make_receiver()

    first = matching.auto_match(db_session)
    second = matching.auto_match(db_session)

    assert len(first.matches) == 1
    assert second.matches == []


def test_pools_exclude_matched_banned_and_manually_matched_users(
    db_session, make_giver, make_receiver
):
    matched_giver, _ = make_giver("matched")
    receiver, request = make_receiver()
    banned_giver, _ = make_giver("banned")
    manual_giver, _ = make_giver("manual")
    free_giver, free_offer = make_giver("free")
    _match(db_session, matched_giver, receiver, request)
    bans.ban_user(db_session, banned_giver.id, reason="fraud", banned_by="operator")
    matching.create_manual_match(
        db_session,
        user_id=manual_giver.id,
        role=HelpRole.GIVER,
        amount="100",
        counterparty=matching.Counterparty(name="Outside Person"),
        created_by="operator",
    )

    available = {activity.user_id for activity in matching.available_givers(db_session)}

    assert available == {free_giver.id}
    assert free_offer.id in {activity.id for activity in matching.available_givers(db_session)}
    assert matching.pending_receivers(db_session) == []


def test_list_matches_filters_by_status(db_session, make_giver, make_receiver):
    giver, _ = make_giver()
    receiver, request = make_receiver()
    match = _match(db_session, giver, receiver, request)

    assert [m.id for m in matching.list_matches(db_session)] == [match.id]
    assert matching.list_matches(db_session, status=MatchStatus.COMPLETED) == []

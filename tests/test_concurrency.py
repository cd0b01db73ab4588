"""Two sessions pairing the same member at once.

SQLite ignores ``FOR UPDATE`` and only opens a write transaction at the first
DML statement, so the second session below can commit while the first has only
read. That is the window a row lock closes on PostgreSQL; here only the
``live_parties`` unique key stands between the two pairings.
"""
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, or_, select
from sqlalchemy.orm import sessionmaker

from mutual_aid.models import (
    Base,
    HelpActivity,
    HelpActivityStatus,
    HelpRole,
    LiveParty,
    ManualMatch,
    MatchStatus,
    Package,
    PaymentMatch,
    User,
)
from mutual_aid.services import matching, registry
from mutual_aid.utils.errors import Conflict

LIVE = (MatchStatus.PENDING, MatchStatus.AWAITING_CONFIRMATION)


@pytest.fixture
def sessions(tmp_path):
    file_engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", future=True)
    Base.metadata.create_all(bind=file_engine)
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False, future=True)
    opened = []

    def _open():
        session = factory()
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.close()
    file_engine.dispose()


@pytest.fixture
def members(sessions):
    """``u`` both gives and asks; ``r1`` asks; ``g2`` gives."""

    setup = sessions()
    setup.add(Package(id="pkg-2", name="Bronze", amount=Decimal("100"), return_percentage=30, duration_days=5))
    people = {}
    for name in ("u", "r1", "g2"):
        user = User(username=name, email=f"{name}@example.com", full_name=name.upper(), phone_number="+237600000001")
        setup.add(user)
        people[name] = user
    setup.commit()

    requests = {}
    for name, user in people.items():
        registry.register_offer(setup, user.id, "pkg-2")
        if name in ("u", "r1"):
            requests[name] = registry.register_request(setup, user.id, "pkg-2")
    return people, requests


def _interleave(monkeypatch, first_session, second_pairing):
    """Run ``second_pairing`` once, right after ``first_session`` passed its availability checks."""

    original = matching._ensure_free
    pending = [second_pairing]

    def _ensure_free(db, user_id, *, party):
        original(db, user_id, party=party)
        if db is first_session and party == "receiver" and pending:
            pending.pop()()

    monkeypatch.setattr(matching, "_ensure_free", _ensure_free)


def test_opposite_side_pairings_cannot_both_commit(monkeypatch, sessions, members):
    people, requests = members
    u, r1, g2 = people["u"], people["r1"], people["g2"]
    session_a, session_b = sessions(), sessions()

    def _pair_u_as_receiver():
        matching.create_match(
            session_b,
            giver_id=g2.id,
            receiver_id=u.id,
            help_activity_id=requests["u"].id,
            matched_by="apikey:ops-b",
        )

    _interleave(monkeypatch, session_a, _pair_u_as_receiver)

    with pytest.raises(Conflict) as exc:
        matching.create_match(
            session_a,
            giver_id=u.id,
            receiver_id=r1.id,
            help_activity_id=requests["r1"].id,
            matched_by="apikey:ops-a",
        )
    assert exc.value.code == "PARTY_ALREADY_MATCHED"

    check = sessions()
    live = check.scalars(
        select(PaymentMatch)
        .where(or_(PaymentMatch.giver_id == u.id, PaymentMatch.receiver_id == u.id))
        .where(PaymentMatch.status.in_(LIVE))
    ).all()
    assert [(m.giver_id, m.receiver_id) for m in live] == [(g2.id, u.id)]
    assert check.get(HelpActivity, requests["r1"].id).status == HelpActivityStatus.PENDING
    assert {row.role for row in check.scalars(select(LiveParty).where(LiveParty.user_id == u.id))} == set(HelpRole)


def test_manual_match_racing_a_payment_match(monkeypatch, sessions, members):
    people, requests = members
    u, r1 = people["u"], people["r1"]
    session_a, session_b = sessions(), sessions()

    def _manual_for_u():
        matching.create_manual_match(
            session_b,
            user_id=u.id,
            role=HelpRole.GIVER,
            amount="100",
            counterparty=matching.Counterparty(name="Marie Cash"),
            created_by="apikey:ops-b",
        )

    _interleave(monkeypatch, session_a, _manual_for_u)

    with pytest.raises(Conflict) as exc:
        matching.create_match(
            session_a,
            giver_id=u.id,
            receiver_id=r1.id,
            help_activity_id=requests["r1"].id,
            matched_by="apikey:ops-a",
        )
    assert exc.value.code == "PARTY_ALREADY_MATCHED"

    check = sessions()
    assert check.scalar(select(func.count()).select_from(PaymentMatch)) == 0
    manual = check.scalars(select(ManualMatch).where(ManualMatch.user_id == u.id)).one()
    assert manual.status == MatchStatus.PENDING
    assert check.get(HelpActivity, requests["r1"].id).status == HelpActivityStatus.PENDING

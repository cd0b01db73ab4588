from uuid import uuid4

import pytest
from sqlalchemy import select

from mutual_aid.models import HelpActivity, User, UserRole
from mutual_aid.models.audit import AuditLog


@pytest.mark.anyio("asyncio")
async def test_user_creation_audit_has_api_actor(client, admin_headers, db_session):
    payload = {
        "username": f"audit-user-{uuid4().hex[:6]}",
        "email": f"audit-user-{uuid4().hex[:6]}@example.com",
        "full_name": "Audit User",
        "phone_number": "+237600000099",
    }
    resp = await client.post("/users", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["role"] == "MEMBER"
    assert body["is_active"] is True

    db_session.expire_all()
    audit = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "CREATE_USER")
        .order_by(AuditLog.id.desc())
        .first()
    )
    assert audit is not None
    assert audit.actor.startswith("apikey:")
    assert audit.data_json["email"].startswith("***@")


@pytest.mark.anyio("asyncio")
async def test_duplicate_user_is_refused(client, admin_headers):
    payload = {"username": "twin", "email": "twin@example.com"}
    first = await client.post("/users", json=payload, headers=admin_headers)
    second = await client.post("/users", json=payload, headers=admin_headers)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "USER_CREATE_FAILED"


@pytest.mark.anyio("asyncio")
async def test_get_unknown_user(client, admin_headers):
    resp = await client.get("/users/424242", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "USER_NOT_FOUND"


@pytest.mark.anyio("asyncio")
async def test_delete_user_cascades(client, admin_headers, db_session, make_giver):
    giver, _ = make_giver("leaving")

    resp = await client.delete(f"/users/{giver.id}", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["user_id"] == giver.id
    assert body["removed"]["help_activities"] == 1

    db_session.expire_all()
    assert db_session.get(User, giver.id) is None
    assert db_session.scalars(select(HelpActivity).where(HelpActivity.user_id == giver.id)).all() == []

    resp = await client.get(f"/users/{giver.id}", headers=admin_headers)
    assert resp.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_admin_user_cannot_be_deleted(client, admin_headers, make_user):
    admin = make_user("operator", role=UserRole.ADMIN)

    resp = await client.delete(f"/users/{admin.id}", headers=admin_headers)
    assert resp.status_code == 412
    assert resp.json()["error"]["code"] == "ADMIN_DELETE_FORBIDDEN"

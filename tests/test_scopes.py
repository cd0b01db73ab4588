"""Scope enforcement regression tests."""
from uuid import uuid4

import pytest
from sqlalchemy import select

from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.models.audit import AuditLog


@pytest.fixture
def member_headers(make_user, member_headers_for):
    return member_headers_for(make_user("scoped"))


@pytest.mark.anyio
async def test_missing_key_is_rejected(client):
    response = await client.get("/admin/pending-receivers")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NO_API_KEY"


@pytest.mark.anyio
async def test_unknown_key_is_rejected(client):
    response = await client.get("/help/activities", headers={"X-API-Key": "not-a-real-key"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.anyio
async def test_member_cannot_manage_apikeys(client, member_headers):
    response = await client.get("/apikeys/1", headers=member_headers)
    assert response.status_code == 403
    payload = response.json()
    assert payload["error"]["code"] == "INSUFFICIENT_SCOPE"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/admin/pending-receivers"),
        ("post", "/admin/auto-match"),
        ("get", "/admin/bans"),
        ("get", "/admin/user-packages"),
        ("get", "/users/1"),
    ],
)
async def test_member_forbidden_on_operator_routes(client, member_headers, method, path):
    response = await client.request(method.upper(), path, headers=member_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_SCOPE"


@pytest.mark.anyio
async def test_admin_key_without_member_cannot_use_help(client, admin_headers):
    response = await client.get("/help/activities", headers=admin_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "MEMBER_NOT_FOUND"


@pytest.mark.anyio
async def test_inactive_member_is_refused(client, db_session, make_user, member_headers_for):
    user = make_user("dormant")
    headers = member_headers_for(user)
    user.is_active = False
    db_session.commit()

    response = await client.get("/help/activities", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCOUNT_INACTIVE"


@pytest.mark.anyio
async def test_admin_issues_member_key(client, admin_headers, make_user):
    user = make_user("keyholder")

    response = await client.post(
        "/apikeys", json={"name": "member-without-user", "scope": "member"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "APIKEY_USER_REQUIRED"

    response = await client.post(
        "/apikeys",
        json={"name": f"keyholder-{uuid4().hex[:6]}", "scope": "member", "user_id": user.id},
        headers=admin_headers,
    )
    assert response.status_code == 201
    raw_key = response.json()["key"]
    assert raw_key.startswith("aid_")

    response = await client.get("/help/activities", headers={"X-API-Key": raw_key})
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.anyio
async def test_duplicate_key_name_is_refused(client, admin_headers):
    payload = {"name": "ops-console", "scope": "admin"}
    first = await client.post("/apikeys", json=payload, headers=admin_headers)
    second = await client.post("/apikeys", json=payload, headers=admin_headers)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "APIKEY_EXISTS"


@pytest.mark.anyio
async def test_admin_can_revoke_key(client, admin_headers, make_api_key, db_session):
    key_token = f"revokable-{uuid4().hex}"
    api_key = make_api_key(name=f"revokable-{uuid4().hex}", key=key_token)

    response = await client.delete(f"/apikeys/{api_key.id}", headers=admin_headers)
    assert response.status_code == 204
    response = await client.delete(f"/apikeys/{api_key.id}", headers=admin_headers)
    assert response.status_code == 204

    db_session.refresh(api_key)
    assert api_key.is_active is False
    actions = db_session.scalars(
        select(AuditLog.action).where(AuditLog.entity == "ApiKey", AuditLog.entity_id == api_key.id)
    ).all()
    assert "REVOKE_API_KEY" in actions
    assert "REVOKE_API_KEY_NOOP" in actions

    response = await client.get("/help/activities", headers={"Authorization": f"Bearer {key_token}"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_legacy_key_rejected_outside_dev(monkeypatch, client):
    monkeypatch.setattr("mutual_aid.security.DEV_API_KEY_ALLOWED", False)
    response = await client.get("/admin/bans", headers={"Authorization": "Bearer test-secret-key"})
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "LEGACY_KEY_FORBIDDEN"


@pytest.mark.anyio
async def test_legacy_key_usage_is_audited(client, db_session):
    response = await client.get("/admin/bans", headers={"Authorization": "Bearer test-secret-key"})
    assert response.status_code == 200
    audit_entry = db_session.execute(
        select(AuditLog).where(AuditLog.action == "LEGACY_API_KEY_USED").order_by(AuditLog.at.desc())
    ).scalars().first()
    assert audit_entry is not None
    assert audit_entry.data_json.get("env") == "test"
    # The transient legacy key is never persisted.
    assert db_session.scalars(select(ApiKey).where(ApiKey.scope == ApiScope.admin)).all() == []

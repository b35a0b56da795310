import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from conftest import make_lead_payload
from httpx import ASGITransport, AsyncClient

from buyer_leads.db.session import get_session
from buyer_leads.main import app
from buyer_leads.middleware.auth import TokenManager
from buyer_leads.routes import health as health_routes
from buyer_leads.routes.leads import get_rate_limiter

API = "/api"


@pytest_asyncio.fixture
async def client(session_factory, rate_limiter):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def sign_in(client, email="agent@example.com"):
    response = await client.post(f"{API}/auth/token", json={"email": email})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def create_lead(client, headers, **overrides):
    response = await client.post(f"{API}/leads", json=make_lead_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()


@pytest.mark.asyncio
async def test_token_endpoint_reuses_user_by_email(client):
    first = await client.post(f"{API}/auth/token", json={"email": "Agent@Example.com", "name": "Agent"})
    second = await client.post(f"{API}/auth/token", json={"email": "agent@example.com"})

    assert first.status_code == 200
    assert first.json()["token_type"] == "bearer"
    assert first.json()["user_id"] == second.json()["user_id"]


@pytest.mark.asyncio
async def test_token_endpoint_rejects_malformed_email(client):
    response = await client.post(f"{API}/auth/token", json={"email": "nope"})
    assert response.status_code == 422
    assert response.json()["details"]["errors"][0]["field"] == "email"


@pytest.mark.asyncio
async def test_create_returns_camel_case_lead(client):
    headers = await sign_in(client)
    lead = await create_lead(client, headers)

    assert lead["fullName"] == "Asha Verma"
    assert lead["propertyType"] == "Apartment"
    assert lead["status"] == "New"
    assert lead["tags"] == ["hot", "loan"]
    assert lead["createdAt"] == lead["updatedAt"]
    uuid.UUID(lead["ownerId"])


@pytest.mark.asyncio
async def test_requests_without_token_are_unauthorized(client):
    response = await client.get(f"{API}/leads")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"

    response = await client.post(f"{API}/leads", json=make_lead_payload())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.get(f"{API}/leads", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid authentication token"


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client):
    token = TokenManager.create_access_token({"sub": str(uuid.uuid4())}, expires_delta=timedelta(seconds=-5))
    response = await client.get(f"{API}/leads", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Token has expired"


@pytest.mark.asyncio
async def test_create_reports_every_violation(client):
    headers = await sign_in(client)
    payload = make_lead_payload(propertyType="Villa", bhk=None, budgetMin=900, budgetMax=100)

    response = await client.post(f"{API}/leads", json=payload, headers=headers)

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert [e["field"] for e in body["details"]["errors"]] == ["bhk", "budgetMax"]


@pytest.mark.asyncio
async def test_malformed_body_uses_same_error_shape(client):
    headers = await sign_in(client)
    response = await client.post(f"{API}/leads", json=make_lead_payload(budgetMin="lots"), headers=headers)

    assert response.status_code == 422
    assert response.json()["details"]["errors"][0]["field"] == "budgetMin"


@pytest.mark.asyncio
async def test_sixth_create_within_window_is_rate_limited(client):
    headers = await sign_in(client)
    for _ in range(5):
        await create_lead(client, headers)

    response = await client.post(f"{API}/leads", json=make_lead_payload(), headers=headers)

    assert response.status_code == 429
    assert response.json()["code"] == "too_many_requests"
    assert response.headers["Retry-After"] == "60"
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Reset"] == "1714554060"


@pytest.mark.asyncio
async def test_list_filters_and_pages(client):
    headers = await sign_in(client)
    for status in ["New", "Converted", "Qualified", "Converted", "Dropped"]:
        await create_lead(client, headers, status=status)

    response = await client.get(f"{API}/leads", params={"status": "Converted"}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["totalCount"] == 2
    assert body["totalPages"] == 1
    assert body["currentPage"] == 1
    assert {item["status"] for item in body["items"]} == {"Converted"}


@pytest.mark.asyncio
async def test_list_shows_leads_of_every_owner(client):
    owner = await sign_in(client, "owner@example.com")
    viewer = await sign_in(client, "viewer@example.com")
    await create_lead(client, owner)

    response = await client.get(f"{API}/leads", headers=viewer)
    assert response.json()["totalCount"] == 1


@pytest.mark.asyncio
async def test_detail_is_owner_only(client):
    owner = await sign_in(client, "owner@example.com")
    other = await sign_in(client, "other@example.com")
    lead = await create_lead(client, owner)

    response = await client.get(f"{API}/leads/{lead['id']}", headers=owner)
    assert response.status_code == 200
    assert response.json()["lead"]["id"] == lead["id"]
    assert [entry["action"] for entry in response.json()["history"]] == ["created"]

    response = await client.get(f"{API}/leads/{lead['id']}", headers=other)
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


@pytest.mark.asyncio
async def test_unknown_and_malformed_ids(client):
    headers = await sign_in(client)

    response = await client.get(f"{API}/leads/{uuid.uuid4()}", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"

    response = await client.get(f"{API}/leads/not-a-uuid", headers=headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_with_stale_token_returns_conflict(client):
    headers = await sign_in(client)
    lead = await create_lead(client, headers)

    first = await client.put(
        f"{API}/leads/{lead['id']}",
        json={"status": "Contacted", "updatedAt": lead["updatedAt"]},
        headers=headers,
    )
    assert first.status_code == 200
    assert first.json()["updatedAt"] != lead["updatedAt"]

    stale = await client.put(
        f"{API}/leads/{lead['id']}",
        json={"status": "Dropped", "updatedAt": lead["updatedAt"]},
        headers=headers,
    )
    assert stale.status_code == 409
    assert stale.json()["code"] == "concurrency_conflict"


@pytest.mark.asyncio
async def test_update_by_other_user_is_forbidden(client):
    owner = await sign_in(client, "owner@example.com")
    other = await sign_in(client, "other@example.com")
    lead = await create_lead(client, owner)

    response = await client.put(f"{API}/leads/{lead['id']}", json={"status": "Dropped"}, headers=other)
    assert response.status_code == 403

    response = await client.delete(f"{API}/leads/{lead['id']}", headers=other)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_update_delete_scenario(client):
    headers = await sign_in(client)
    lead = await create_lead(client, headers)

    response = await client.put(
        f"{API}/leads/{lead['id']}",
        json={"status": "Qualified", "updatedAt": lead["updatedAt"]},
        headers=headers,
    )
    assert response.status_code == 200

    detail = (await client.get(f"{API}/leads/{lead['id']}", headers=headers)).json()
    updates = [entry for entry in detail["history"] if entry["action"] == "updated"]
    assert len(updates) == 1
    assert updates[0]["diff"] == {"status": {"old": "New", "new": "Qualified"}}

    response = await client.delete(f"{API}/leads/{lead['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Lead deleted successfully"}

    response = await client.get(f"{API}/leads/{lead['id']}", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_export_returns_dated_csv_attachment(client):
    headers = await sign_in(client)
    await create_lead(client, headers, status="Converted", budgetMin=0)
    await create_lead(client, headers, status="New")

    response = await client.get(f"{API}/leads/export", params={"status": "Converted"}, headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    today = datetime.now(timezone.utc).date().isoformat()
    assert response.headers["content-disposition"] == f'attachment; filename="buyers-{today}.csv"'
    lines = response.text.splitlines()
    assert lines[0].startswith("fullName,email,phone")
    assert len(lines) == 2
    assert ",Converted," in lines[1]


@pytest.mark.asyncio
async def test_import_upload(client):
    headers = await sign_in(client)
    content = (
        "fullName,phone,city,propertyType,bhk,purpose,timeline,source,tags\n"
        "Ravi Kumar,9123456780,Chandigarh,Villa,3,Buy,3-6m,Referral,\"garden,corner\"\n"
        "Kiran Bedi,9123456781,Zirakpur,Plot,,Rent,>6m,Walk-in,\n"
    )

    response = await client.post(
        f"{API}/leads/import",
        files={"file": ("leads.csv", content.encode("utf-8"), "text/csv")},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["importedCount"] == 2

    listing = (await client.get(f"{API}/leads", params={"search": "ravi"}, headers=headers)).json()
    assert listing["items"][0]["tags"] == ["garden", "corner"]


@pytest.mark.asyncio
async def test_import_reports_row_errors(client):
    headers = await sign_in(client)
    content = (
        "fullName,phone,city,propertyType,bhk,purpose,timeline,source\n"
        "Ravi Kumar,9123456780,Chandigarh,Villa,3,Buy,3-6m,Referral\n"
        "Kiran Bedi,12,Zirakpur,Plot,,Rent,>6m,Walk-in\n"
    )

    response = await client.post(
        f"{API}/leads/import",
        files={"file": ("leads.csv", content.encode("utf-8"), "text/csv")},
        headers=headers,
    )

    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_failed"
    assert body["errors"] == [{"row": 3, "field": "phone", "message": "Phone must be 10-15 digits"}]
    assert (await client.get(f"{API}/leads", headers=headers)).json()["totalCount"] == 0


@pytest.mark.asyncio
async def test_import_without_file_is_bad_request(client):
    headers = await sign_in(client)
    response = await client.post(f"{API}/leads/import", headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "missing_file"


@pytest.mark.asyncio
async def test_health_reports_degraded_without_redis(client, monkeypatch):
    async def redis_down():
        return {"status": "unhealthy", "error": "connection refused"}

    monkeypatch.setattr(health_routes, "redis_health_check", redis_down)

    response = await client.get(f"{API}/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["database"]["status"] == "healthy"

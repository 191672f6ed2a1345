"""API tests for credit endpoints."""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.models.credit import CreditType
from wellness.services.credit_service import CreditService


async def _seed_credit(db: AsyncSession, user_id, amount: int) -> None:
    await CreditService(db).create_cancellation_credit(
        user_id=user_id,
        appointment_id=uuid4(),
        amount=amount,
        now=datetime.utcnow() - timedelta(minutes=5),
    )
    await db.commit()


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(async_client: AsyncClient) -> None:
    response = await async_client.get(f"/v1/credits/users/{uuid4()}/balance")

    assert response.status_code == 401
    assert response.json()["details"][0]["code"] == "authentication_required"


@pytest.mark.asyncio
async def test_patient_reads_own_balance_only(async_client: AsyncClient, db_session: AsyncSession, auth_headers) -> None:
    patient_id = uuid4()
    await _seed_credit(db_session, patient_id, 50000)

    own = await async_client.get(
        f"/v1/credits/users/{patient_id}/balance",
        headers=auth_headers("patient", user_id=patient_id),
    )
    assert own.status_code == 200
    assert own.json() == {"user_id": str(patient_id), "balance": 50000}

    other = await async_client.get(
        f"/v1/credits/users/{uuid4()}/balance",
        headers=auth_headers("patient", user_id=patient_id),
    )
    assert other.status_code == 403
    assert other.json()["error"] == "Forbidden"
    assert other.json()["details"][0]["code"] == "insufficient_permissions"


@pytest.mark.asyncio
async def test_staff_lists_credits_and_transactions(async_client: AsyncClient, db_session: AsyncSession, auth_headers) -> None:
    user_id = uuid4()
    await _seed_credit(db_session, user_id, 20000)
    headers = auth_headers("staff")

    credits = await async_client.get(f"/v1/credits/users/{user_id}", headers=headers)
    transactions = await async_client.get(f"/v1/credits/users/{user_id}/transactions?limit=10", headers=headers)
    summary = await async_client.get(f"/v1/credits/users/{user_id}/summary", headers=headers)

    assert credits.status_code == 200
    assert [c["amount"] for c in credits.json()] == [20000]
    assert credits.json()[0]["credit_type"] == "cancellation"
    assert transactions.status_code == 200
    assert transactions.json()[0]["transaction_type"] == "earned"
    assert summary.json()["available_balance"] == 20000


@pytest.mark.asyncio
async def test_patient_history_shows_spent_credits(async_client: AsyncClient, db_session: AsyncSession, auth_headers) -> None:
    patient_id = uuid4()
    await _seed_credit(db_session, patient_id, 40000)
    await CreditService(db_session).use_credits_for_appointment(patient_id, uuid4(), 40000)
    await db_session.commit()
    headers = auth_headers("patient", user_id=patient_id)

    history = await async_client.get(f"/v1/credits/users/{patient_id}/history", headers=headers)
    available = await async_client.get(f"/v1/credits/users/{patient_id}", headers=headers)
    other = await async_client.get(f"/v1/credits/users/{uuid4()}/history", headers=headers)

    assert history.status_code == 200
    assert [(c["amount"], c["is_used"]) for c in history.json()] == [(40000, True)]
    assert available.json() == []
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_quote_uses_tier_schedule(async_client: AsyncClient, auth_headers) -> None:
    response = await async_client.post(
        "/v1/credits/quote",
        json={
            "appointment_amount": 100000,
            "appointment_at": "2025-09-15T10:00:00",
            "cancelled_at": "2025-09-14T14:00:00",
        },
        headers=auth_headers("patient"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["credit_amount"] == 75000
    assert body["refund_percentage"] == 75


@pytest.mark.asyncio
async def test_cancellation_credit_requires_staff(async_client: AsyncClient, auth_headers) -> None:
    payload = {"user_id": str(uuid4()), "appointment_id": str(uuid4()), "amount": 25000}

    denied = await async_client.post("/v1/credits/cancellation", json=payload, headers=auth_headers("patient"))
    created = await async_client.post("/v1/credits/cancellation", json=payload, headers=auth_headers("staff"))

    assert denied.status_code == 403
    assert created.status_code == 201
    assert "credit_id" in created.json()


@pytest.mark.asyncio
async def test_negative_credit_amount_fails_validation(async_client: AsyncClient, auth_headers) -> None:
    response = await async_client.post(
        "/v1/credits/cancellation",
        json={"user_id": str(uuid4()), "appointment_id": str(uuid4()), "amount": -1},
        headers=auth_headers("staff"),
    )

    assert response.status_code == 422
    assert response.json()["details"][0]["code"] == "invalid_amount"


@pytest.mark.asyncio
async def test_manual_credit_is_admin_only(async_client: AsyncClient, auth_headers) -> None:
    payload = {
        "user_id": str(uuid4()),
        "amount": 15000,
        "credit_type": CreditType.PROMOTION.value,
        "description": "Referral promotion",
    }

    denied = await async_client.post("/v1/credits/manual", json=payload, headers=auth_headers("staff"))
    created = await async_client.post("/v1/credits/manual", json=payload, headers=auth_headers("admin"))

    assert denied.status_code == 403
    assert denied.json()["details"][0]["code"] == "insufficient_permissions"
    assert created.status_code == 201


@pytest.mark.asyncio
async def test_use_credits_insufficient_balance_returns_402(async_client: AsyncClient, db_session: AsyncSession, auth_headers) -> None:
    patient_id = uuid4()
    await _seed_credit(db_session, patient_id, 50000)
    headers = auth_headers("patient", user_id=patient_id)

    response = await async_client.post(
        "/v1/credits/use",
        json={"user_id": str(patient_id), "appointment_id": str(uuid4()), "amount": 60000},
        headers=headers,
    )

    assert response.status_code == 402
    assert response.json()["error"] == "InsufficientCredit"
    assert response.json()["message"] == "Insufficient credit: requested 60000, available 50000"

    balance = await async_client.get(f"/v1/credits/users/{patient_id}/balance", headers=headers)
    assert balance.json()["balance"] == 50000


@pytest.mark.asyncio
async def test_use_credits_returns_remaining_balance(async_client: AsyncClient, db_session: AsyncSession, auth_headers) -> None:
    patient_id = uuid4()
    await _seed_credit(db_session, patient_id, 50000)

    response = await async_client.post(
        "/v1/credits/use",
        json={"user_id": str(patient_id), "appointment_id": str(uuid4()), "amount": 20000},
        headers=auth_headers("patient", user_id=patient_id),
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "balance": 30000}


@pytest.mark.asyncio
async def test_expire_endpoint_and_summaries_are_admin_only(async_client: AsyncClient, auth_headers) -> None:
    assert (await async_client.post("/v1/credits/expire", headers=auth_headers("staff"))).status_code == 403

    expired = await async_client.post("/v1/credits/expire", headers=auth_headers("admin"))
    summaries = await async_client.get("/v1/credits/summaries", headers=auth_headers("admin"))

    assert expired.status_code == 200
    assert expired.json() == {"expired_count": 0}
    assert summaries.status_code == 200
    assert summaries.json() == []

"""API tests for booking and availability endpoints."""
from datetime import date, timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient

BOOKING_DATE = (date.today() + timedelta(days=7)).isoformat()


def _booking_payload(resource_id, start: str = "09:00", end: str = "10:00", **extra) -> dict:
    return {
        "resource_id": str(resource_id),
        "resource_type": "professional",
        "booking_date": BOOKING_DATE,
        "start_time": start,
        "end_time": end,
        **extra,
    }


@pytest.mark.asyncio
async def test_create_booking_and_conflict(async_client: AsyncClient, auth_headers) -> None:
    resource_id = uuid4()
    headers = auth_headers("staff")

    created = await async_client.post("/v1/bookings", json=_booking_payload(resource_id), headers=headers)
    assert created.status_code == 201
    assert created.json()["status"] == "scheduled"

    conflict = await async_client.post(
        "/v1/bookings", json=_booking_payload(resource_id, "09:30", "10:30"), headers=headers
    )
    assert conflict.status_code == 409
    body = conflict.json()
    assert body["error"] == "Conflict"
    assert body["details"][0]["value"] == created.json()["id"]
    assert str(resource_id) in body["details"][0]["message"]
    assert "09:00-10:00" in body["details"][0]["message"]

    adjacent = await async_client.post(
        "/v1/bookings", json=_booking_payload(resource_id, "10:00", "11:00"), headers=headers
    )
    assert adjacent.status_code == 201


@pytest.mark.asyncio
async def test_invalid_interval_fails_validation(async_client: AsyncClient, auth_headers) -> None:
    response = await async_client.post(
        "/v1/bookings",
        json=_booking_payload(uuid4(), "10:00", "09:00"),
        headers=auth_headers("staff"),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_availability_endpoints(async_client: AsyncClient, auth_headers) -> None:
    resource_id, room_id = uuid4(), uuid4()
    headers = auth_headers("staff")
    await async_client.post("/v1/bookings", json=_booking_payload(resource_id), headers=headers)

    single = await async_client.post(
        "/v1/bookings/availability",
        json={"resource_id": str(resource_id), "booking_date": BOOKING_DATE, "start_time": "09:30", "duration_minutes": 60},
        headers=headers,
    )
    assert single.status_code == 200
    assert single.json()["available"] is False
    assert len(single.json()["conflicts"]) == 1

    multi = await async_client.post(
        "/v1/bookings/availability/resources",
        json={
            "resource_ids": [str(resource_id), str(room_id)],
            "booking_date": BOOKING_DATE,
            "start_time": "10:00",
            "end_time": "11:00",
        },
        headers=headers,
    )
    assert multi.json()["available"] is True

    slots = await async_client.get(
        "/v1/bookings/slots",
        params={"resource_id": str(resource_id), "booking_date": BOOKING_DATE, "duration_minutes": 60},
        headers=headers,
    )
    assert slots.status_code == 200
    by_time = {slot["time"]: slot["available"] for slot in slots.json()["slots"]}
    assert by_time["08:00:00"] is True
    assert by_time["09:00:00"] is False
    assert by_time["10:00:00"] is True


@pytest.mark.asyncio
async def test_patient_books_for_self_only(async_client: AsyncClient, auth_headers) -> None:
    patient_id = uuid4()
    headers = auth_headers("patient", user_id=patient_id)

    own = await async_client.post("/v1/bookings", json=_booking_payload(uuid4()), headers=headers)
    assert own.status_code == 201
    assert own.json()["user_id"] == str(patient_id)

    foreign = await async_client.post(
        "/v1/bookings", json=_booking_payload(uuid4(), user_id=str(uuid4())), headers=headers
    )
    assert foreign.status_code == 403

    hidden = await async_client.get(f"/v1/bookings/{own.json()['id']}", headers=auth_headers("patient"))
    assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_reschedule_endpoint(async_client: AsyncClient, auth_headers) -> None:
    resource_id = uuid4()
    headers = auth_headers("staff")
    created = await async_client.post("/v1/bookings", json=_booking_payload(resource_id), headers=headers)

    response = await async_client.patch(
        f"/v1/bookings/{created.json()['id']}/reschedule",
        json={"booking_date": BOOKING_DATE, "start_time": "14:00", "end_time": "15:00"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["start_time"] == "14:00:00"


@pytest.mark.asyncio
async def test_cancel_booking_with_credit(async_client: AsyncClient, auth_headers) -> None:
    patient_id = uuid4()
    staff_headers = auth_headers("staff")
    created = await async_client.post(
        "/v1/bookings",
        json=_booking_payload(uuid4(), user_id=str(patient_id), appointment_id=str(uuid4())),
        headers=staff_headers,
    )
    booking_id = created.json()["id"]

    # Patients cannot price their own cancellation
    denied = await async_client.post(
        f"/v1/bookings/{booking_id}/cancel",
        json={"appointment_amount": 100000},
        headers=auth_headers("patient", user_id=patient_id),
    )
    assert denied.status_code == 403

    response = await async_client.post(
        f"/v1/bookings/{booking_id}/cancel",
        json={"appointment_amount": 100000},
        headers=staff_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["booking"]["status"] == "cancelled"
    assert body["refund_percentage"] == 100
    assert body["credit_amount"] == 100000

    balance = await async_client.get(
        f"/v1/credits/users/{patient_id}/balance", headers=auth_headers("patient", user_id=patient_id)
    )
    assert balance.json()["balance"] == 100000

    again = await async_client.post(f"/v1/bookings/{booking_id}/cancel", json={}, headers=staff_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_unknown_booking_returns_404(async_client: AsyncClient, auth_headers) -> None:
    response = await async_client.get(f"/v1/bookings/{uuid4()}", headers=auth_headers("admin"))

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient) -> None:
    live = await async_client.get("/health")
    ready = await async_client.get("/health/ready")

    assert live.json()["status"] == "healthy"
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"] == "connected"

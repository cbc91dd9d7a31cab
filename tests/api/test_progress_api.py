"""Tests for the progress overview endpoint"""
import pytest
import httpx
from datetime import date


USER = "123456789"


@pytest.fixture
def half_done_day(ledger_store):
    """Two daily habits on 2024-01-11; only one completed"""
    first = ledger_store.add_habit(USER, {"type": "daily"}, date(2024, 1, 10))
    second = ledger_store.add_habit(USER, {"type": "daily"}, date(2024, 1, 10))
    ledger_store.add_tracker(USER, first.id, date(2024, 1, 10))
    ledger_store.add_tracker(USER, second.id, date(2024, 1, 10))
    ledger_store.add_tracker(USER, first.id, date(2024, 1, 11))
    return first, second


@pytest.mark.asyncio
async def test_progress_overview(api_client: httpx.AsyncClient, auth_headers, half_done_day, frozen_time):
    response = await api_client.get(f"/api/v1/users/{USER}/progress", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["timezone"] == "UTC"
    assert [d["date"] for d in data["history"]] == ["2024-01-10", "2024-01-11"]
    today = data["history"][-1]
    assert today["completion_rate"] == 0.5
    assert today["is_perfect_day"] is False
    assert data["current_streak"] == 1
    assert data["longest_streak"] == 1


@pytest.mark.asyncio
async def test_progress_display_range(api_client: httpx.AsyncClient, auth_headers, half_done_day, frozen_time):
    response = await api_client.get(
        f"/api/v1/users/{USER}/progress",
        params={"start_date": "2024-01-11", "end_date": "2024-01-11"},
        headers=auth_headers
    )

    data = response.json()
    assert [d["date"] for d in data["history"]] == ["2024-01-11"]
    assert data["current_streak"] == 1


@pytest.mark.asyncio
async def test_progress_invalid_timezone(api_client: httpx.AsyncClient, auth_headers):
    response = await api_client.get(
        f"/api/v1/users/{USER}/progress",
        params={"timezone": "Nowhere/Special"},
        headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_progress_reversed_range(api_client: httpx.AsyncClient, auth_headers, frozen_time):
    response = await api_client.get(
        f"/api/v1/users/{USER}/progress",
        params={"start_date": "2024-01-11", "end_date": "2024-01-01"},
        headers=auth_headers
    )
    assert response.status_code == 400

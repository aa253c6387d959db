from datetime import UTC, datetime, timedelta

import pytest

from finwise.db_models import CategoryModel, ExpenseModel
from finwise.models import Period, Plan
from finwise.routers.dashboard import (
    monthly_totals,
    period_start,
    summarize_by_category,
    trend_start,
)

from conftest import bearer

NOW = datetime(2025, 3, 15, 10, 30, tzinfo=UTC)


def test_period_start():
    assert period_start(Period.MONTH, NOW) == datetime(2025, 3, 1, tzinfo=UTC)
    assert period_start(Period.YEAR, NOW) == datetime(2025, 1, 1, tzinfo=UTC)
    assert period_start(Period.ALL, NOW) is None


def test_trend_start_crosses_year_boundary():
    assert trend_start(NOW) == datetime(2024, 3, 1, tzinfo=UTC)
    assert trend_start(NOW, months=3) == datetime(2024, 12, 1, tzinfo=UTC)


def test_summaries():
    food = CategoryModel(name="Food", color="#111111", icon=None)
    rent = CategoryModel(name="Rent", color="#222222", icon=None)
    expenses = [
        ExpenseModel(category=food, date=datetime(2025, 1, 5)),
        ExpenseModel(category=rent, date=datetime(2025, 2, 1)),
        ExpenseModel(category=food, date=datetime(2025, 2, 9)),
    ]
    amounts = [10.0, 500.0, 15.0]

    stats = summarize_by_category(expenses, amounts)
    assert [(s.name, s.amount) for s in stats] == [("Rent", 500.0), ("Food", 25.0)]

    trend = monthly_totals(expenses, amounts)
    assert [(m.month, m.total) for m in trend] == [("2025-01", 10.0), ("2025-02", 515.0)]


def test_stats_converted_into_default_currency(client, database, categories):
    user_id = database.create_user("eve@finwise.io", plan=Plan.PRO)
    headers = bearer(user_id)
    today = datetime.now(UTC).replace(microsecond=0)

    for amount, currency in [(100, "USD"), (85, "EUR")]:
        client.post(
            "/api/v1/expenses",
            json={
                "title": "Groceries",
                "amount": amount,
                "category_id": categories["food"],
                "currency": currency,
                "date": today.isoformat(),
            },
            headers=headers,
        )
    client.post(
        "/api/v1/income",
        json={"title": "Pay", "amount": 73, "category_id": categories["salary"], "currency": "GBP"},
        headers=headers,
    )
    # outside the current year
    client.post(
        "/api/v1/expenses",
        json={
            "title": "Old",
            "amount": 999,
            "category_id": categories["transport"],
            "date": (today - timedelta(days=800)).isoformat(),
        },
        headers=headers,
    )

    resp = client.get("/api/v1/dashboard/stats", params={"period": "year"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()

    assert body["currency"] == "USD"
    assert body["total_spending"] == pytest.approx(200.0)
    assert body["total_income"] == pytest.approx(100.0)
    assert body["category_stats"][0]["name"] == "Food & Dining"
    assert len(body["recent_expenses"]) == 3
    assert body["subscription"] == {"plan": "PRO", "expense_count": 3, "limit": None}

    client.put("/api/v1/user/currency", json={"currency": "EUR"}, headers=headers)
    body = client.get("/api/v1/dashboard/stats", params={"period": "year"}, headers=headers).json()
    assert body["currency"] == "EUR"
    assert body["total_spending"] == pytest.approx(170.0)


def test_stats_for_free_plan_show_limit(client, user_id):
    body = client.get("/api/v1/dashboard/stats", headers=bearer(user_id)).json()
    assert body["total_spending"] == 0
    assert body["category_stats"] == []
    assert body["subscription"]["limit"] == 50


def test_stats_rejects_unknown_period(client, user_id):
    resp = client.get("/api/v1/dashboard/stats", params={"period": "decade"}, headers=bearer(user_id))
    assert resp.status_code == 422


def test_stats_exclude_future_dated_transactions(client, database, categories):
    user_id = database.create_user("frank@finwise.io", plan=Plan.PRO)
    headers = bearer(user_id)
    now = datetime.now(UTC).replace(microsecond=0)

    for amount, when in [(40, now - timedelta(seconds=5)), (500, now + timedelta(days=2))]:
        resp = client.post(
            "/api/v1/expenses",
            json={
                "title": "Bill",
                "amount": amount,
                "category_id": categories["food"],
                "date": when.isoformat(),
            },
            headers=headers,
        )
        assert resp.status_code == 201
    client.post(
        "/api/v1/income",
        json={
            "title": "Bonus",
            "amount": 900,
            "category_id": categories["salary"],
            "date": (now + timedelta(days=2)).isoformat(),
        },
        headers=headers,
    )

    body = client.get("/api/v1/dashboard/stats", params={"period": "all"}, headers=headers).json()
    assert body["total_spending"] == pytest.approx(40.0)
    assert body["total_income"] == 0
    assert sum(m["total"] for m in body["monthly_trend"]) == pytest.approx(40.0)

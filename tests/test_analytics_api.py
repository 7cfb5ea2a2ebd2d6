from datetime import datetime

from app.utils.dates import to_iso, utcnow


def _previous_month_noon():
    now = utcnow()
    if now.month == 1:
        return datetime(now.year - 1, 12, 1, 12)
    return datetime(now.year, now.month - 1, 1, 12)


def _seed(headers, make_category, make_transaction):
    food = make_category(headers, name="Food", type="expense")
    rent = make_category(headers, name="Rent", type="expense")
    salary = make_category(headers, name="Salary", type="income")
    make_transaction(headers, salary, amount=2000)
    make_transaction(headers, rent, amount=800)
    make_transaction(headers, food, amount=150)
    make_transaction(headers, food, amount=50)
    make_transaction(headers, food, amount=999, status="cancelled")
    make_transaction(headers, food, amount=100, date=to_iso(_previous_month_noon()))
    return food, rent, salary


def test_dashboard(client, auth_headers, make_category, make_transaction):
    _seed(auth_headers, make_category, make_transaction)
    response = client.get("/api/analytics/dashboard", params={"period": "month"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]

    assert data["summary"]["income"]["total"] == 2000
    assert data["summary"]["expense"]["total"] == 1000
    assert data["summary"]["net"] == 1000
    assert [row["category_name"] for row in data["category_breakdown"]] == ["Salary", "Rent", "Food"]
    assert data["top_categories"] == data["category_breakdown"][:5]
    assert data["period"]["type"] == "month"
    assert {row["type"] for row in data["monthly_trends"]} <= {"income", "expense"}


def test_categories_analysis_by_type(client, auth_headers, make_category, make_transaction):
    _seed(auth_headers, make_category, make_transaction)
    response = client.get("/api/analytics/categories", params={"type": "expense"}, headers=auth_headers)
    data = response.json()["data"]

    assert data["total_amount"] == 1000
    rent, food = data["category_analysis"]
    assert rent["percentage"] == 80.0
    assert food["percentage"] == 20.0
    assert food["min"] == 50
    assert food["max"] == 150


def test_custom_period_requires_dates(client, auth_headers):
    response = client.get("/api/analytics/categories", params={"period": "custom"}, headers=auth_headers)
    assert response.status_code == 400

    response = client.get(
        "/api/analytics/dashboard",
        params={"period": "custom", "start_date": "2020-01-01T00:00:00", "end_date": "2020-02-01T00:00:00"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["summary"]["net"] == 0


def test_trends_buckets_by_month(client, auth_headers, make_category, make_transaction):
    _seed(auth_headers, make_category, make_transaction)
    response = client.get("/api/analytics/trends", params={"period": "3months", "type": "expense"}, headers=auth_headers)
    trends = response.json()["data"]["trends"]

    assert len(trends) == 2
    assert trends[0]["total"] == 100
    assert trends[0]["change"] is None
    assert trends[1]["total"] == 1000
    assert trends[1]["change"] == 900.0


def test_comparison(client, auth_headers, make_category, make_transaction):
    _seed(auth_headers, make_category, make_transaction)
    comparison = client.get("/api/analytics/comparison", headers=auth_headers).json()["data"]["comparison"]

    assert comparison["expense"] == {"current": 1000, "previous": 100, "change": 900.0, "change_type": "increase"}
    assert comparison["income"]["change"] == 100.0
    assert comparison["income"]["previous"] == 0


def test_analytics_require_auth(client):
    client.cookies.clear()
    assert client.get("/api/analytics/dashboard").status_code == 401

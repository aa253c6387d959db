from datetime import UTC, datetime

from finwise.db_models import ExpenseModel, SubscriptionModel, UserModel
from finwise.models import Plan, Role, SubscriptionStatus
from finwise.routers.admin import signups_by_month

from conftest import add_expenses, bearer


def test_signups_by_month():
    created = [
        datetime(2025, 2, 3, tzinfo=UTC),
        datetime(2025, 1, 9, tzinfo=UTC),
        datetime(2025, 2, 28, tzinfo=UTC),
    ]
    assert signups_by_month(created) == {"2025-01": 1, "2025-02": 2}


def test_admin_routes_reject_non_admins(client, user_id):
    headers = bearer(user_id)

    assert client.get("/api/v1/admin/stats", headers=headers).status_code == 403
    assert client.get("/api/v1/admin/users", headers=headers).status_code == 403
    assert (
        client.put(
            "/api/v1/admin/users/role", json={"user_id": user_id, "role": "ADMIN"}, headers=headers
        ).status_code
        == 403
    )
    assert client.get("/api/v1/admin/stats").status_code == 401


def test_role_claim_in_token_is_not_trusted(client, user_id):
    # A USER forging an ADMIN claim is still checked against the database
    resp = client.get("/api/v1/admin/stats", headers=bearer(user_id, role=Role.ADMIN))
    assert resp.status_code == 403


def test_stats(client, database, admin_id, user_id, categories):
    database.create_user("pro@finwise.io", plan=Plan.PRO)
    database.create_user("lapsed@finwise.io", plan=Plan.PRO, status=SubscriptionStatus.PAST_DUE)
    add_expenses(database, user_id, categories["food"], 3)

    resp = client.get("/api/v1/admin/stats", headers=bearer(admin_id, Role.ADMIN))
    assert resp.status_code == 200

    body = resp.json()
    assert body["total_users"] == 4
    assert body["total_expenses"] == 3
    assert body["total_subscriptions"] == 4
    assert body["active_pro_subscriptions"] == 1
    assert sum(body["monthly_pro_signups"].values()) == 1


def test_list_users_newest_first(client, database, admin_id, user_id, categories):
    add_expenses(database, user_id, categories["food"], 2)

    resp = client.get("/api/v1/admin/users", params={"limit": 1}, headers=bearer(admin_id, Role.ADMIN))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert body["current_page"] == 1
    assert len(body["users"]) == 1
    row = body["users"][0]
    assert row["id"] == user_id
    assert row["plan"] == "FREE"
    assert row["expense_count"] == 2

    resp = client.get(
        "/api/v1/admin/users", params={"page": 2, "limit": 1}, headers=bearer(admin_id, Role.ADMIN)
    )
    row = resp.json()["users"][0]
    assert row["email"] == "root@finwise.io"
    assert row["role"] == "ADMIN"
    assert row["expense_count"] == 0


def test_list_subscriptions_filtered(client, database, admin_id, user_id):
    database.create_user("pro@finwise.io", plan=Plan.PRO)

    resp = client.get(
        "/api/v1/admin/subscriptions", params={"plan": "PRO"}, headers=bearer(admin_id, Role.ADMIN)
    )
    assert resp.status_code == 200
    assert [s["plan"] for s in resp.json()] == ["PRO"]


def test_update_role(client, database, admin_id, user_id):
    headers = bearer(admin_id, Role.ADMIN)

    resp = client.put(
        "/api/v1/admin/users/role", json={"user_id": user_id, "role": "ADMIN"}, headers=headers
    )
    assert resp.status_code == 200
    assert database.user(user_id).role == Role.ADMIN

    resp = client.put(
        "/api/v1/admin/users/role", json={"user_id": "missing", "role": "USER"}, headers=headers
    )
    assert resp.status_code == 404


def test_delete_user_cascades(client, database, admin_id, user_id, categories):
    add_expenses(database, user_id, categories["food"], 2)
    headers = bearer(admin_id, Role.ADMIN)

    assert client.delete(f"/api/v1/admin/users/{user_id}", headers=headers).status_code == 204
    assert database.user(user_id) is None
    assert database.subscription(user_id) is None
    assert database.count(ExpenseModel) == 0
    assert database.count(UserModel) == 1
    assert database.count(SubscriptionModel) == 1

    assert client.delete(f"/api/v1/admin/users/{user_id}", headers=headers).status_code == 404


def test_admins_cannot_be_deleted(client, database, admin_id):
    other_admin = database.create_user("ops@finwise.io", role=Role.ADMIN)

    resp = client.delete(f"/api/v1/admin/users/{other_admin}", headers=bearer(admin_id, Role.ADMIN))
    assert resp.status_code == 403
    assert database.user(other_admin) is not None


def test_categories_admin_only_writes(client, database, admin_id, user_id, categories):
    resp = client.get("/api/v1/categories", params={"kind": "INCOME"}, headers=bearer(user_id))
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()] == ["Salary"]

    new = {"name": "Pets", "kind": "EXPENSE", "color": "#AABBCC"}
    assert client.post("/api/v1/categories", json=new, headers=bearer(user_id)).status_code == 403

    admin = bearer(admin_id, Role.ADMIN)
    resp = client.post("/api/v1/categories", json=new, headers=admin)
    assert resp.status_code == 201
    assert client.post("/api/v1/categories", json=new, headers=admin).status_code == 409

    assert client.delete(f"/api/v1/categories/{resp.json()['id']}", headers=admin).status_code == 204
    assert client.delete("/api/v1/categories/missing", headers=admin).status_code == 404


def test_category_in_use_cannot_be_deleted(client, database, admin_id, user_id, categories):
    add_expenses(database, user_id, categories["food"], 1)

    resp = client.delete(
        f"/api/v1/categories/{categories['food']}", headers=bearer(admin_id, Role.ADMIN)
    )
    assert resp.status_code == 409

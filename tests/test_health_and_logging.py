from finwise.auth import dependencies as auth_deps
from finwise.utils.logging import add_service_info, filter_sensitive_data


class BrokenRedis:
    async def ping(self):
        raise ConnectionError("redis down")


def test_health_and_root(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["database"] == "healthy"
    assert body["redis"] == "healthy"
    assert body["version"] == "0.1.0"

    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Finwise API"


def test_health_degraded_when_redis_fails(client, monkeypatch):
    monkeypatch.setattr(auth_deps, "redis_client", BrokenRedis())

    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["redis"] == "unhealthy"


def test_filter_sensitive_data_masks_secrets():
    event = filter_sensitive_data(
        None,
        "info",
        {
            "event": "Webhook rejected",
            "stripe_signature": "t=1700000000,v1=abcdef0123456789",
            "password": "pw",
            "user_id": "user_1",
        },
    )
    assert event["stripe_signature"] == "t=17...6789"
    assert event["password"] == "***REDACTED***"
    assert event["user_id"] == "user_1"


def test_add_service_info():
    event = add_service_info(None, "info", {"event": "x"})
    assert event["service"] == "finwise-api"
    assert event["version"] == "0.1.0"


def test_filter_sensitive_data_masks_nested_headers():
    event = filter_sensitive_data(
        None,
        "warning",
        {"event": "Webhook rejected", "headers": {"Authorization": "Bearer abc", "Accept": "*/*"}},
    )
    assert event["headers"] == {"Authorization": "Bear... abc", "Accept": "*/*"}
    assert event["event"] == "Webhook rejected"

import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException

from finwise.auth import dependencies as auth_deps
from finwise.auth.jwt import (
    RateLimitConfig,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from finwise.db_models import SubscriptionModel
from finwise.models import Role, TokenData


def test_jwt_encode_decode():
    token = create_access_token({"sub": "user1", "role": "ADMIN"}, expires_delta=timedelta(minutes=5))
    data = decode_access_token(token)
    assert data is not None
    assert data.sub == "user1"
    assert data.is_admin


def test_jwt_rejects_expired_and_garbage():
    expired = create_access_token({"sub": "user1"}, expires_delta=timedelta(seconds=-1))
    assert decode_access_token(expired) is None
    assert decode_access_token("not-a-token") is None
    assert decode_access_token(create_access_token({"role": "USER"})) is None
    assert decode_access_token(create_access_token({"sub": "u", "role": "ROOT"})) is None


def test_password_hash_and_verify():
    h = get_password_hash("s3cret-password")
    assert h != "s3cret-password"
    assert verify_password("s3cret-password", h)
    assert not verify_password("wrong", h)


def test_rate_limit_config_defaults():
    cfg = RateLimitConfig()
    assert cfg.get_limit(None) == 20
    assert cfg.get_limit(TokenData(sub="u")) == 5
    assert cfg.get_limit(TokenData(sub="a", role=Role.ADMIN)) == 300


def test_get_redis_unavailable(monkeypatch):
    monkeypatch.setattr(auth_deps, "redis_client", None)

    with pytest.raises(HTTPException) as ei:
        asyncio.run(auth_deps.get_redis())

    assert ei.value.status_code == 503


def test_register_and_login(client, database):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "New.User@finwise.io", "password": "password123", "name": "New"},
    )
    assert resp.status_code == 201
    token = resp.json()["access_token"]

    profile = client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {token}"})
    assert profile.json()["email"] == "new.user@finwise.io"
    assert database.count(SubscriptionModel) == 1

    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "new.user@finwise.io", "password": "password123"},
    )
    assert resp.status_code == 409

    resp = client.post(
        "/api/v1/auth/token", json={"email": "new.user@finwise.io", "password": "password123"}
    )
    assert resp.status_code == 200
    assert decode_access_token(resp.json()["access_token"]).role == Role.USER

    resp = client.post(
        "/api/v1/auth/token", json={"email": "new.user@finwise.io", "password": "nope-nope"}
    )
    assert resp.status_code == 401


def test_register_validates_password_length(client):
    resp = client.post(
        "/api/v1/auth/register", json={"email": "short@finwise.io", "password": "short"}
    )
    assert resp.status_code == 422

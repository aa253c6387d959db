"""Pytest configuration and fixtures."""

import asyncio
import hashlib
import hmac
import json
import os
import time
from datetime import UTC, datetime, timedelta

# Settings are cached on first use, so the environment is fixed before any
# finwise import.
os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_finwise"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_finwise"
os.environ["STRIPE_PRO_PRICE_ID"] = "price_pro_test"
os.environ["EXCHANGE_RATE_API_URL"] = ""
os.environ["PROMETHEUS_ENABLED"] = "false"
os.environ["USER_REQUESTS_PER_MINUTE"] = "5"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from finwise import db as db_mod  # noqa: E402
from finwise.auth import create_access_token, get_password_hash  # noqa: E402
from finwise.auth import dependencies as auth_deps  # noqa: E402
from finwise.db import Base  # noqa: E402
from finwise.db_models import (  # noqa: E402
    CategoryModel,
    ExpenseModel,
    SubscriptionModel,
    UserModel,
)
from finwise.main import create_app  # noqa: E402
from finwise.models import CategoryKind, Plan, Role, SubscriptionStatus  # noqa: E402
from finwise.services import currency as currency_mod  # noqa: E402
from finwise.services.billing import SubscriptionDetail, get_stripe_gateway  # noqa: E402
from finwise.services.currency import CurrencyService, StaticRateProvider  # noqa: E402

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
PERIOD_END = datetime(2030, 1, 31, tzinfo=UTC)


class FakeRedis:
    """In-memory stand-in for the rate-limit counters."""

    def __init__(self):
        self.counters = {}
        self.expiries = {}

    async def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    async def ttl(self, key):
        return self.expiries.get(key, -1)

    async def ping(self):
        return True

    async def close(self):
        return


class FakeStripeGateway:
    """Records calls instead of reaching Stripe."""

    def __init__(self):
        self.subscriptions = {}
        self.customers = []
        self.checkouts = []
        self.retrieved = []

    async def retrieve_subscription(self, subscription_id):
        self.retrieved.append(subscription_id)
        return self.subscriptions.get(subscription_id) or SubscriptionDetail(
            id=subscription_id,
            customer_id="cus_test",
            status="active",
            current_period_end=PERIOD_END,
        )

    async def create_customer(self, email, name, user_id):
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append((customer_id, email, user_id))
        return customer_id

    async def create_checkout_session(
        self, customer_id, price_id, user_id, success_url, cancel_url
    ):
        self.checkouts.append(
            {"customer": customer_id, "price": price_id, "user_id": user_id}
        )
        return f"https://checkout.stripe.test/{customer_id}"

    async def create_portal_session(self, customer_id, return_url):
        return f"https://billing.stripe.test/{customer_id}"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_type: str, obj: dict, created: int | None = None, event_id: str = "evt_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": created or int(time.time()),
            "data": {"object": obj},
        }
    )


def bearer(user_id: str, role: Role = Role.USER) -> dict:
    token = create_access_token(
        {"sub": user_id, "role": role.value}, expires_delta=timedelta(minutes=5)
    )
    return {"Authorization": f"Bearer {token}"}


class Database:
    """Synchronous helpers over the test database for arranging and asserting."""

    def __init__(self, factory: async_sessionmaker[AsyncSession]):
        self.factory = factory

    def run(self, fn):
        async def _run():
            async with self.factory() as session:
                result = await fn(session)
                await session.commit()
                return result

        return asyncio.run(_run())

    def add(self, obj):
        async def _add(session):
            session.add(obj)
            await session.flush()
            return obj.id

        return self.run(_add)

    def create_user(
        self,
        email: str,
        role: Role = Role.USER,
        plan: Plan | None = Plan.FREE,
        **subscription,
    ) -> str:
        async def _create(session):
            user = UserModel(
                email=email,
                name=email.split("@")[0],
                password_hash=get_password_hash("password123"),
                role=role,
            )
            session.add(user)
            await session.flush()
            if plan is not None:
                session.add(
                    SubscriptionModel(
                        user_id=user.id,
                        plan=plan,
                        status=subscription.pop("status", SubscriptionStatus.ACTIVE),
                        **subscription,
                    )
                )
            return user.id

        return self.run(_create)

    def subscription(self, user_id: str) -> SubscriptionModel | None:
        async def _get(session):
            result = await session.execute(
                select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
            )
            return result.scalar_one_or_none()

        return self.run(_get)

    def user(self, user_id: str) -> UserModel | None:
        async def _get(session):
            return await session.get(UserModel, user_id)

        return self.run(_get)

    def count(self, model) -> int:
        async def _count(session):
            result = await session.execute(select(model))
            return len(result.unique().scalars().all())

        return self.run(_count)


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite file per test, wired into ``finwise.db``."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'finwise-test.db'}", poolclass=NullPool
    )
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _create_all():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_all())
    monkeypatch.setattr(db_mod, "_engine", engine)
    monkeypatch.setattr(db_mod, "_session_factory", factory)

    yield Database(factory)

    asyncio.run(engine.dispose())


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(auth_deps, "redis_client", redis)
    return redis


@pytest.fixture
def fake_gateway():
    return FakeStripeGateway()


@pytest.fixture
def currency_service(monkeypatch):
    service = CurrencyService(StaticRateProvider())
    monkeypatch.setattr(currency_mod, "_currency_service", service)
    return service


@pytest.fixture
def client(database, fake_redis, fake_gateway, currency_service):
    app = create_app()
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway
    return TestClient(app)


@pytest.fixture
def categories(database) -> dict:
    return {
        "food": database.add(
            CategoryModel(name="Food & Dining", kind=CategoryKind.EXPENSE, color="#FF6B6B", icon="🍽️")
        ),
        "transport": database.add(
            CategoryModel(name="Transportation", kind=CategoryKind.EXPENSE, color="#4ECDC4", icon="🚗")
        ),
        "salary": database.add(
            CategoryModel(name="Salary", kind=CategoryKind.INCOME, color="#2ECC71", icon="💼")
        ),
    }


@pytest.fixture
def user_id(database) -> str:
    return database.create_user("alice@finwise.io")


@pytest.fixture
def admin_id(database) -> str:
    return database.create_user("root@finwise.io", role=Role.ADMIN)


def add_expenses(database: Database, user_id: str, category_id: str, count: int) -> None:
    async def _add(session):
        for i in range(count):
            session.add(
                ExpenseModel(
                    user_id=user_id,
                    category_id=category_id,
                    title=f"Expense {i}",
                    amount=1.0,
                    currency="USD",
                )
            )

    database.run(_add)

"""Stripe billing: checkout, portal, and webhook reconciliation.

Webhook handling is split in three steps:

1. ``verify`` the ``Stripe-Signature`` header against the webhook secret.
   Nothing is read or written before this passes.
2. ``parse_event`` turns the verified payload into a :data:`BillingEvent`
   variant, then Stripe is queried for subscription details where the
   transition needs them.
3. ``apply_event`` computes the new :class:`SubscriptionState`. It is a pure
   field overwrite, so redelivered events converge on the same state.

Records are matched by Stripe subscription id, or by the ``userId`` checkout
metadata for ``checkout.session.completed``. Delivery order is not assumed.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from functools import partial
from typing import Any, Mapping, Union

import stripe
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.config import Settings, get_settings
from finwise.db_models import SubscriptionModel, UserModel
from finwise.models import Plan, SubscriptionStatus
from finwise.services.subscriptions import SubscriptionRepository

logger = structlog.get_logger()


class BillingNotConfiguredError(RuntimeError):
    """Stripe keys or price ids are missing."""


class WebhookSignatureError(Exception):
    """The webhook signature is missing or does not verify."""


class InvalidWebhookPayloadError(Exception):
    """The verified webhook body is not a Stripe event."""


class NoBillingAccountError(ValueError):
    """The user has no Stripe customer yet."""


def _utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _from_epoch(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _object_id(value: Any) -> str | None:
    """Stripe fields may be an id string or an expanded object."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


def _period_end(subscription: Mapping[str, Any]) -> datetime | None:
    """``current_period_end`` from the subscription or, on newer API versions, its first item."""
    period_end = subscription.get("current_period_end")
    if period_end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    return _from_epoch(period_end)


def map_provider_status(provider_status: str | None) -> SubscriptionStatus:
    """Map Stripe's subscription status onto the local vocabulary."""
    if provider_status == "active":
        return SubscriptionStatus.ACTIVE
    if provider_status == "past_due":
        return SubscriptionStatus.PAST_DUE
    return SubscriptionStatus.CANCELLED


# ============ Events ============


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    created: datetime | None
    user_id: str | None
    stripe_subscription_id: str | None
    stripe_customer_id: str | None = None
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class InvoicePaymentSucceeded:
    event_id: str
    created: datetime | None
    stripe_subscription_id: str
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    created: datetime | None
    stripe_subscription_id: str


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    created: datetime | None
    stripe_subscription_id: str
    provider_status: str | None
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    created: datetime | None
    stripe_subscription_id: str


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    created: datetime | None
    event_type: str


BillingEvent = Union[
    CheckoutCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    UnhandledEvent,
]


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> str | None:
    sub_id = _object_id(invoice.get("subscription"))
    if sub_id:
        return sub_id
    details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return _object_id(details.get("subscription"))


def parse_event(payload: Mapping[str, Any]) -> BillingEvent:
    """Build the event variant for a verified Stripe event payload."""
    try:
        event_type = payload["type"]
        obj = payload["data"]["object"]
    except (KeyError, TypeError) as e:
        raise InvalidWebhookPayloadError("Malformed Stripe event") from e

    event_id = payload.get("id", "")
    created = _from_epoch(payload.get("created"))

    if event_type == "checkout.session.completed":
        metadata = obj.get("metadata") or {}
        return CheckoutCompleted(
            event_id=event_id,
            created=created,
            user_id=metadata.get("userId"),
            stripe_subscription_id=_object_id(obj.get("subscription")),
            stripe_customer_id=_object_id(obj.get("customer")),
        )

    if event_type in ("invoice.payment_succeeded", "invoice.payment_failed"):
        sub_id = _invoice_subscription_id(obj)
        if not sub_id:
            # One-off invoices carry no subscription
            return UnhandledEvent(event_id=event_id, created=created, event_type=event_type)
        if event_type == "invoice.payment_succeeded":
            return InvoicePaymentSucceeded(
                event_id=event_id, created=created, stripe_subscription_id=sub_id
            )
        return InvoicePaymentFailed(
            event_id=event_id, created=created, stripe_subscription_id=sub_id
        )

    if event_type == "customer.subscription.updated":
        return SubscriptionUpdated(
            event_id=event_id,
            created=created,
            stripe_subscription_id=obj["id"],
            provider_status=obj.get("status"),
            current_period_end=_period_end(obj),
        )

    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(
            event_id=event_id, created=created, stripe_subscription_id=obj["id"]
        )

    return UnhandledEvent(event_id=event_id, created=created, event_type=event_type)


# ============ State ============


@dataclass(frozen=True)
class SubscriptionState:
    """Billing fields of one subscription record."""

    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    current_period_end: datetime | None = None
    last_event_at: datetime | None = None

    @classmethod
    def from_model(cls, sub: SubscriptionModel) -> SubscriptionState:
        return cls(
            plan=Plan(sub.plan),
            status=SubscriptionStatus(sub.status),
            stripe_customer_id=sub.stripe_customer_id,
            stripe_subscription_id=sub.stripe_subscription_id,
            current_period_end=_utc(sub.current_period_end),
            last_event_at=_utc(sub.last_event_at),
        )

    def apply_to(self, sub: SubscriptionModel) -> None:
        sub.plan = self.plan
        sub.status = self.status
        sub.stripe_customer_id = self.stripe_customer_id
        sub.stripe_subscription_id = self.stripe_subscription_id
        sub.current_period_end = self.current_period_end
        sub.last_event_at = self.last_event_at


def _newest(current: datetime | None, created: datetime | None) -> datetime | None:
    if current is None:
        return created
    if created is None:
        return current
    return max(current, created)


def apply_event(state: SubscriptionState, event: BillingEvent) -> SubscriptionState:
    """Return the state after ``event``; unrecognised or incomplete events change nothing."""
    if isinstance(event, UnhandledEvent):
        return state

    seen = _newest(state.last_event_at, event.created)

    if isinstance(event, CheckoutCompleted):
        if not event.user_id or not event.stripe_subscription_id:
            return state
        return replace(
            state,
            plan=Plan.PRO,
            status=SubscriptionStatus.ACTIVE,
            stripe_subscription_id=event.stripe_subscription_id,
            stripe_customer_id=event.stripe_customer_id or state.stripe_customer_id,
            current_period_end=event.current_period_end,
            last_event_at=seen,
        )

    if isinstance(event, InvoicePaymentSucceeded):
        return replace(
            state,
            status=SubscriptionStatus.ACTIVE,
            current_period_end=event.current_period_end or state.current_period_end,
            last_event_at=seen,
        )

    if isinstance(event, InvoicePaymentFailed):
        # A failure older than the newest applied event must not regress status
        if (
            state.last_event_at is not None
            and event.created is not None
            and event.created < state.last_event_at
        ):
            return state
        return replace(state, status=SubscriptionStatus.PAST_DUE, last_event_at=seen)

    if isinstance(event, SubscriptionUpdated):
        return replace(
            state,
            status=map_provider_status(event.provider_status),
            current_period_end=event.current_period_end,
            last_event_at=seen,
        )

    if isinstance(event, SubscriptionDeleted):
        return replace(
            state,
            plan=Plan.FREE,
            status=SubscriptionStatus.CANCELLED,
            stripe_subscription_id=None,
            current_period_end=None,
            last_event_at=seen,
        )

    return state


# ============ Stripe gateway ============


@dataclass(frozen=True)
class SubscriptionDetail:
    id: str
    customer_id: str | None
    status: str | None
    current_period_end: datetime | None


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


class StripeGateway:
    """Thin async wrapper over the synchronous Stripe SDK."""

    def __init__(self, api_key: str | None) -> None:
        self._api_key = api_key

    def _require_key(self) -> str:
        if not self._api_key:
            raise BillingNotConfiguredError("Stripe secret key not configured")
        return self._api_key

    async def _call(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(fn, *args, api_key=self._require_key(), **kwargs)
        )

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionDetail:
        sub = _as_dict(await self._call(stripe.Subscription.retrieve, subscription_id))
        return SubscriptionDetail(
            id=sub["id"],
            customer_id=_object_id(sub.get("customer")),
            status=sub.get("status"),
            current_period_end=_period_end(sub),
        )

    async def create_customer(self, email: str, name: str | None, user_id: str) -> str:
        customer = await self._call(
            stripe.Customer.create,
            email=email,
            name=name or None,
            metadata={"userId": user_id},
        )
        return customer["id"]

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"userId": user_id},
        )
        return session["url"]

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session["url"]


# ============ Service ============


class BillingService:
    """Stripe billing operations bound to one database session."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeGateway,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.subscriptions = SubscriptionRepository(db)

    # --- Checkout / portal ---

    async def create_checkout_session(self, user: UserModel) -> str:
        """Create a Checkout session for the PRO plan. Returns the session URL."""
        price_id = self.settings.stripe_pro_price_id
        if not price_id:
            raise BillingNotConfiguredError("No Stripe price configured for the PRO plan")

        sub = await self.subscriptions.get_or_create(user.id)
        if not sub.stripe_customer_id:
            sub.stripe_customer_id = await self.gateway.create_customer(
                email=user.email, name=user.name, user_id=user.id
            )
            await self.db.flush()
            logger.info("Stripe customer created", user_id=user.id)

        app_url = self.settings.app_url.rstrip("/")
        return await self.gateway.create_checkout_session(
            customer_id=sub.stripe_customer_id,
            price_id=price_id,
            user_id=user.id,
            success_url=f"{app_url}/subscription?success=true",
            cancel_url=f"{app_url}/subscription?canceled=true",
        )

    async def create_portal_session(self, user_id: str) -> str:
        """Create a customer portal session. Returns the URL."""
        sub = await self.subscriptions.get_by_user(user_id)
        if sub is None or not sub.stripe_customer_id:
            raise NoBillingAccountError("No Stripe customer found")

        app_url = self.settings.app_url.rstrip("/")
        return await self.gateway.create_portal_session(
            customer_id=sub.stripe_customer_id, return_url=f"{app_url}/subscription"
        )

    # --- Webhooks ---

    def verify(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Check the signature and decode the event; raises before any side effect."""
        secret = self.settings.stripe_webhook_secret
        if secret is None:
            raise BillingNotConfiguredError("Stripe webhook secret not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                secret.get_secret_value(),
                self.settings.stripe_webhook_tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise WebhookSignatureError("Invalid signature") from e

        try:
            data = json.loads(body)
        except ValueError as e:
            raise InvalidWebhookPayloadError("Webhook body is not JSON") from e
        if not isinstance(data, dict):
            raise InvalidWebhookPayloadError("Webhook body is not a Stripe event")
        return data

    async def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify, parse and reconcile one webhook delivery."""
        data = self.verify(payload, signature)
        event = parse_event(data)
        event = await self._hydrate(event)
        handled = await self.reconcile(event)
        return {"event_type": data.get("type"), "handled": handled}

    async def _hydrate(self, event: BillingEvent) -> BillingEvent:
        """Fill in subscription details that only Stripe can provide."""
        if isinstance(event, CheckoutCompleted) and event.user_id and event.stripe_subscription_id:
            detail = await self.gateway.retrieve_subscription(event.stripe_subscription_id)
            return replace(
                event,
                stripe_customer_id=detail.customer_id or event.stripe_customer_id,
                current_period_end=detail.current_period_end,
            )
        if isinstance(event, InvoicePaymentSucceeded):
            detail = await self.gateway.retrieve_subscription(event.stripe_subscription_id)
            return replace(event, current_period_end=detail.current_period_end)
        return event

    async def reconcile(self, event: BillingEvent) -> bool:
        """Apply ``event`` to the matching record. Returns True if a record matched."""
        log = logger.bind(event_id=event.event_id, event_type=type(event).__name__)

        if isinstance(event, UnhandledEvent):
            log.info("Unhandled Stripe event type", stripe_type=event.event_type)
            return False

        if isinstance(event, CheckoutCompleted):
            if not event.user_id or not event.stripe_subscription_id:
                log.warning("Checkout session missing userId metadata or subscription")
                return False
            if await self.db.get(UserModel, event.user_id) is None:
                log.warning("Checkout session for unknown user", user_id=event.user_id)
                return False
            sub = await self.subscriptions.get_or_create(event.user_id)
        else:
            sub = await self.subscriptions.get_by_stripe_subscription_id(
                event.stripe_subscription_id
            )
            if sub is None:
                log.warning(
                    "No subscription matches Stripe subscription",
                    stripe_subscription_id=event.stripe_subscription_id,
                )
                return False

        current = SubscriptionState.from_model(sub)
        updated = apply_event(current, event)
        if updated != current:
            updated.apply_to(sub)
            await self.db.flush()

        log.info(
            "Subscription reconciled",
            user_id=sub.user_id,
            plan=updated.plan.value,
            status=updated.status.value,
        )
        return True


# Singleton instance
_stripe_gateway: StripeGateway | None = None


def get_stripe_gateway() -> StripeGateway:
    """Get the Stripe gateway singleton."""
    global _stripe_gateway
    if _stripe_gateway is None:
        key = get_settings().stripe_secret_key
        _stripe_gateway = StripeGateway(key.get_secret_value() if key else None)
    return _stripe_gateway

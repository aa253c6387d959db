"""Subscription record access.

One row per user, created lazily as FREE/ACTIVE on first read.
"""

from datetime import datetime, timezone

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.db_models import SubscriptionModel
from finwise.models import Plan, SubscriptionStatus, SubscriptionUpdate

logger = structlog.get_logger()


class StripeIdConflictError(ValueError):
    """Raised when a Stripe id already belongs to another user's subscription."""


class SubscriptionRepository:
    """Reads and writes subscription rows within one session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_user(self, user_id: str) -> SubscriptionModel | None:
        result = await self.db.execute(
            select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> SubscriptionModel | None:
        result = await self.db.execute(
            select(SubscriptionModel).where(
                SubscriptionModel.stripe_subscription_id == stripe_subscription_id
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> SubscriptionModel:
        """Return the user's subscription, creating a FREE/ACTIVE one if absent."""
        sub = await self.get_by_user(user_id)
        if sub is not None:
            return sub

        sub = SubscriptionModel(
            user_id=user_id,
            plan=Plan.FREE,
            status=SubscriptionStatus.ACTIVE,
        )
        self.db.add(sub)
        await self.db.flush()
        await self.db.refresh(sub)
        logger.info("Subscription created", user_id=user_id)
        return sub

    async def replace(self, user_id: str, update: SubscriptionUpdate) -> SubscriptionModel:
        """Upsert a full replacement of the billing fields."""
        sub = await self.get_or_create(user_id)
        await self._check_stripe_ids(user_id, update)
        sub.plan = update.plan
        sub.status = update.status
        sub.stripe_customer_id = update.stripe_customer_id
        sub.stripe_subscription_id = update.stripe_subscription_id
        sub.current_period_end = (
            datetime.fromtimestamp(update.current_period_end, tz=timezone.utc)
            if update.current_period_end is not None
            else None
        )
        await self.db.flush()
        await self.db.refresh(sub)
        return sub
    async def _check_stripe_ids(self, user_id: str, update: SubscriptionUpdate) -> None:
        clauses = []
        if update.stripe_customer_id is not None:
            clauses.append(SubscriptionModel.stripe_customer_id == update.stripe_customer_id)
        if update.stripe_subscription_id is not None:
            clauses.append(
                SubscriptionModel.stripe_subscription_id == update.stripe_subscription_id
            )
        if not clauses:
            return

        result = await self.db.execute(
            select(SubscriptionModel.id)
            .where(SubscriptionModel.user_id != user_id)
            .where(or_(*clauses))
            .limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.warning("Stripe id already assigned", user_id=user_id)
            raise StripeIdConflictError("Stripe id is already linked to another account")


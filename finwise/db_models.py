"""
SQLAlchemy ORM models.

Tables:
    - users: accounts, role and default currency
    - subscriptions: one Stripe-backed plan record per user
    - categories: shared expense and income categories
    - expenses / incomes: per-user transactions
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from finwise.db import Base
from finwise.models import CategoryKind, Plan, Role, SubscriptionStatus


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls):
    return Enum(enum_cls, values_callable=lambda e: [m.value for m in e])


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(_enum(Role), default=Role.USER, nullable=False)
    default_currency = Column(String(3), default="USD", nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    subscription = relationship(
        "SubscriptionModel",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    expenses = relationship("ExpenseModel", back_populates="user", cascade="all, delete-orphan")
    incomes = relationship("IncomeModel", back_populates="user", cascade="all, delete-orphan")


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class SubscriptionModel(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    plan = Column(_enum(Plan), default=Plan.FREE, nullable=False)
    status = Column(_enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)

    # Stripe
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True)

    current_period_end = Column(DateTime(timezone=True), nullable=True)
    # Creation time of the newest Stripe event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    user = relationship("UserModel", back_populates="subscription")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    kind = Column(_enum(CategoryKind), default=CategoryKind.EXPENSE, nullable=False)
    color = Column(String(7), default="#85C1E9", nullable=False)
    icon = Column(String(16), nullable=True)

    __table_args__ = (
        Index("ix_categories_kind_name", "kind", "name", unique=True),
    )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

class ExpenseModel(Base):
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    title = Column(String(200), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), default=_now, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    user = relationship("UserModel", back_populates="expenses")
    category = relationship("CategoryModel", lazy="joined")

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
    )


class IncomeModel(Base):
    __tablename__ = "incomes"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    title = Column(String(200), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), default=_now, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    user = relationship("UserModel", back_populates="incomes")
    category = relationship("CategoryModel", lazy="joined")

    __table_args__ = (
        Index("ix_incomes_user_date", "user_id", "date"),
    )

"""Pydantic models for API requests and responses."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Plan(str, Enum):
    """Subscription plans."""

    FREE = "FREE"
    PRO = "PRO"


class SubscriptionStatus(str, Enum):
    """Local subscription status."""

    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"


class Role(str, Enum):
    """User roles."""

    USER = "USER"
    ADMIN = "ADMIN"


class CategoryKind(str, Enum):
    """What a category classifies."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class Period(str, Enum):
    """Dashboard aggregation window."""

    MONTH = "month"
    YEAR = "year"
    ALL = "all"


# ============ Authentication Models ============


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenData(BaseModel):
    """JWT token payload data."""

    sub: str  # User ID
    role: Role = Role.USER
    exp: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class UserRegister(BaseModel):
    """Registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    """Password login request."""

    email: EmailStr
    password: str


# ============ User Models ============


class UserProfile(BaseModel):
    """Authenticated user's profile."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    role: Role
    default_currency: str
    created_at: datetime


class UserCurrencyUpdate(BaseModel):
    """Default currency update request."""

    currency: str = Field(..., min_length=3, max_length=3)


# ============ Subscription Models ============


class SubscriptionResponse(BaseModel):
    """A user's subscription record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    plan: Plan
    status: SubscriptionStatus
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    current_period_end: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class SubscriptionUpdate(BaseModel):
    """Full replacement of a subscription's billing fields."""

    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    current_period_end: int | None = Field(
        default=None, ge=0, description="Period end as Unix epoch seconds"
    )


class CheckoutResponse(BaseModel):
    """Hosted checkout or portal URL."""

    url: str


class WebhookAck(BaseModel):
    """Webhook acknowledgement."""

    received: bool = True


# ============ Category Models ============


class CategoryCreate(BaseModel):
    """Category creation request."""

    name: str = Field(..., min_length=1, max_length=100)
    kind: CategoryKind = CategoryKind.EXPENSE
    color: str = Field(default="#85C1E9", pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: str | None = Field(default=None, max_length=16)


class CategoryResponse(BaseModel):
    """Category."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    kind: CategoryKind
    color: str
    icon: str | None = None


# ============ Transaction Models ============


class TransactionCreate(BaseModel):
    """Expense or income creation request."""

    title: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    category_id: str = Field(..., min_length=1)
    description: str | None = Field(default=None, max_length=1000)
    date: datetime | None = None
    currency: str = Field(default="USD", min_length=3, max_length=3)


class TransactionUpdate(BaseModel):
    """Expense or income update request; omitted fields are unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    amount: float | None = Field(default=None, gt=0)
    category_id: str | None = None
    description: str | None = Field(default=None, max_length=1000)
    date: datetime | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class TransactionResponse(BaseModel):
    """Expense or income record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: float
    description: str | None = None
    date: datetime
    currency: str
    category: CategoryResponse
    created_at: datetime


class Pagination(BaseModel):
    """Paging metadata."""

    page: int
    limit: int
    total: int
    pages: int


class ExpenseList(BaseModel):
    """Paged expenses."""

    expenses: list[TransactionResponse]
    pagination: Pagination


class IncomeList(BaseModel):
    """Paged incomes."""

    incomes: list[TransactionResponse]
    pagination: Pagination


# ============ Dashboard Models ============


class CategoryStat(BaseModel):
    """Spending total for one category."""

    name: str
    amount: float
    color: str
    icon: str | None = None


class MonthlyTotal(BaseModel):
    """Spending total for one calendar month."""

    month: str  # YYYY-MM
    total: float


class PlanUsage(BaseModel):
    """Plan and record-count ceiling."""

    plan: Plan
    expense_count: int
    limit: int | None = None


class DashboardStats(BaseModel):
    """Dashboard aggregates in the user's default currency."""

    currency: str
    period: Period
    total_spending: float
    total_income: float
    category_stats: list[CategoryStat]
    monthly_trend: list[MonthlyTotal]
    recent_expenses: list[TransactionResponse]
    subscription: PlanUsage


# ============ Currency Models ============


class CurrencyOption(BaseModel):
    """Supported currency for select inputs."""

    code: str
    label: str


class CurrencyRatesResponse(BaseModel):
    """Rates relative to a base currency."""

    base: str
    rates: dict[str, float]
    fetched_at: datetime | None = None
    timestamp: datetime


class ConversionResponse(BaseModel):
    """Single conversion result."""

    amount: float
    from_currency: str
    to_currency: str
    rate: float
    result: float
    formatted: str


# ============ Admin Models ============


class AdminStats(BaseModel):
    """Global metrics."""

    total_users: int
    total_expenses: int
    total_subscriptions: int
    active_pro_subscriptions: int
    monthly_pro_signups: dict[str, int]


class AdminUser(BaseModel):
    """User row for the admin table."""

    id: str
    email: str
    name: str | None = None
    role: Role
    created_at: datetime
    plan: Plan | None = None
    status: SubscriptionStatus | None = None
    expense_count: int


class AdminUserList(BaseModel):
    """Paged users."""

    users: list[AdminUser]
    total: int
    pages: int
    current_page: int


class RoleUpdate(BaseModel):
    """Role change request."""

    user_id: str
    role: Role


# ============ Health Models ============


class HealthCheck(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str
    redis: str

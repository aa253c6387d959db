"""Dashboard aggregates."""

from datetime import UTC, datetime
from typing import Sequence

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.config import get_settings
from finwise.db import get_db
from finwise.db_models import ExpenseModel, IncomeModel
from finwise.models import (
    CategoryStat,
    DashboardStats,
    MonthlyTotal,
    Period,
    Plan,
    PlanUsage,
    TransactionResponse,
)
from finwise.routers.users import load_user
from finwise.services.currency import get_currency_service
from finwise.services.subscriptions import SubscriptionRepository
from finwise.services.transactions import as_utc, expense_repository

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

TREND_MONTHS = 12


def period_start(period: Period, now: datetime) -> datetime | None:
    """First instant of the period containing ``now``; None for all time."""
    if period == Period.MONTH:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == Period.YEAR:
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def trend_start(now: datetime, months: int = TREND_MONTHS) -> datetime:
    """First day of the month ``months`` months before ``now``'s month."""
    month_index = now.year * 12 + (now.month - 1) - months
    return now.replace(
        year=month_index // 12,
        month=month_index % 12 + 1,
        day=1,
        hour=0,
        minute=0,
        second=0,
        microsecond=0,
    )


def summarize_by_category(
    expenses: Sequence[ExpenseModel], amounts: Sequence[float]
) -> list[CategoryStat]:
    """Per-category totals, largest first."""
    stats: dict[str, CategoryStat] = {}
    for expense, amount in zip(expenses, amounts):
        category = expense.category
        stat = stats.get(category.name)
        if stat is None:
            stat = stats[category.name] = CategoryStat(
                name=category.name, amount=0.0, color=category.color, icon=category.icon
            )
        stat.amount += amount
    return sorted(stats.values(), key=lambda s: s.amount, reverse=True)


def monthly_totals(
    expenses: Sequence[ExpenseModel], amounts: Sequence[float]
) -> list[MonthlyTotal]:
    """Totals per ``YYYY-MM``, oldest month first."""
    totals: dict[str, float] = {}
    for expense, amount in zip(expenses, amounts):
        month = expense.date.strftime("%Y-%m")
        totals[month] = totals.get(month, 0.0) + amount
    return [MonthlyTotal(month=month, total=total) for month, total in sorted(totals.items())]


async def _fetch(
    db: AsyncSession, model, user_id: str, since: datetime | None, until: datetime
):
    query = select(model).where(model.user_id == user_id, model.date <= as_utc(until))
    if since is not None:
        query = query.where(model.date >= as_utc(since))
    result = await db.execute(query.order_by(model.date.asc()))
    return list(result.unique().scalars().all())


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard statistics",
    description="Totals are converted into the user's default currency.",
)
async def get_stats(
    current_user: CurrentUser,
    period: Period = Query(Period.MONTH),
    db: AsyncSession = Depends(get_db),
) -> DashboardStats:
    user = await load_user(db, current_user.sub)
    currency = user.default_currency
    service = get_currency_service()
    now = datetime.now(UTC)

    since = period_start(period, now)
    expenses = await _fetch(db, ExpenseModel, user.id, since, now)
    incomes = await _fetch(db, IncomeModel, user.id, since, now)
    expense_amounts = await service.convert_many(
        [(e.amount, e.currency) for e in expenses], currency
    )
    income_amounts = await service.convert_many(
        [(i.amount, i.currency) for i in incomes], currency
    )

    trend_expenses = await _fetch(db, ExpenseModel, user.id, trend_start(now), now)
    trend_amounts = await service.convert_many(
        [(e.amount, e.currency) for e in trend_expenses], currency
    )

    repo = expense_repository(db)
    recent, expense_count = await repo.search(user.id, page=1, limit=5)

    sub = await SubscriptionRepository(db).get_or_create(user.id)
    limit = None if sub.plan == Plan.PRO else get_settings().free_plan_expense_limit

    return DashboardStats(
        currency=currency,
        period=period,
        total_spending=sum(expense_amounts),
        total_income=sum(income_amounts),
        category_stats=summarize_by_category(expenses, expense_amounts),
        monthly_trend=monthly_totals(trend_expenses, trend_amounts),
        recent_expenses=[TransactionResponse.model_validate(e) for e in recent],
        subscription=PlanUsage(plan=sub.plan, expense_count=expense_count, limit=limit),
    )

"""Administrative endpoints: global metrics and account management."""

import math

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from finwise.auth import AdminUser
from finwise.db import get_db
from finwise.db_models import ExpenseModel, SubscriptionModel, UserModel
from finwise.models import (
    AdminStats,
    AdminUser as AdminUserRow,
    AdminUserList,
    Plan,
    Role,
    RoleUpdate,
    SubscriptionResponse,
    SubscriptionStatus,
    UserProfile,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])


def signups_by_month(created: list) -> dict[str, int]:
    """Count datetimes per ``YYYY-MM``."""
    counts: dict[str, int] = {}
    for created_at in created:
        month = created_at.strftime("%Y-%m")
        counts[month] = counts.get(month, 0) + 1
    return dict(sorted(counts.items()))


@router.get("/stats", response_model=AdminStats, summary="Global metrics")
async def get_stats(
    admin: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> AdminStats:
    total_users = await db.scalar(select(func.count()).select_from(UserModel))
    total_expenses = await db.scalar(select(func.count()).select_from(ExpenseModel))
    total_subscriptions = await db.scalar(select(func.count()).select_from(SubscriptionModel))

    result = await db.execute(
        select(SubscriptionModel.created_at).where(
            SubscriptionModel.plan == Plan.PRO,
            SubscriptionModel.status == SubscriptionStatus.ACTIVE,
        )
    )
    pro_created = list(result.scalars().all())

    return AdminStats(
        total_users=total_users or 0,
        total_expenses=total_expenses or 0,
        total_subscriptions=total_subscriptions or 0,
        active_pro_subscriptions=len(pro_created),
        monthly_pro_signups=signups_by_month(pro_created),
    )


@router.get("/users", response_model=AdminUserList, summary="List users")
async def list_users(
    admin: AdminUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> AdminUserList:
    total = await db.scalar(select(func.count()).select_from(UserModel)) or 0

    expense_counts = (
        select(ExpenseModel.user_id, func.count().label("expense_count"))
        .group_by(ExpenseModel.user_id)
        .subquery()
    )
    result = await db.execute(
        select(UserModel, func.coalesce(expense_counts.c.expense_count, 0))
        .outerjoin(expense_counts, expense_counts.c.user_id == UserModel.id)
        .options(selectinload(UserModel.subscription))
        .order_by(UserModel.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    users = [
        AdminUserRow(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at,
            plan=user.subscription.plan if user.subscription else None,
            status=user.subscription.status if user.subscription else None,
            expense_count=expense_count,
        )
        for user, expense_count in result.all()
    ]

    return AdminUserList(
        users=users,
        total=total,
        pages=math.ceil(total / limit),
        current_page=page,
    )


@router.get(
    "/subscriptions",
    response_model=list[SubscriptionResponse],
    summary="List subscriptions",
)
async def list_subscriptions(
    admin: AdminUser,
    plan: Plan | None = Query(None),
    subscription_status: SubscriptionStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> list[SubscriptionResponse]:
    query = select(SubscriptionModel).order_by(SubscriptionModel.created_at.desc())
    if plan is not None:
        query = query.where(SubscriptionModel.plan == plan)
    if subscription_status is not None:
        query = query.where(SubscriptionModel.status == subscription_status)
    result = await db.execute(query)
    return [SubscriptionResponse.model_validate(s) for s in result.scalars().all()]


@router.put("/users/role", response_model=UserProfile, summary="Change a user's role")
async def update_role(
    payload: RoleUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> UserProfile:
    user = await db.get(UserModel, payload.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    user.role = payload.role
    await db.flush()

    logger.info(
        "User role updated",
        admin_id=admin.sub,
        user_id=user.id,
        role=payload.role.value,
    )
    return UserProfile.model_validate(user)


@router.delete(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user and all their data",
)
async def delete_user(
    user_id: str,
    admin: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    user = await db.get(
        UserModel,
        user_id,
        options=[
            selectinload(UserModel.subscription),
            selectinload(UserModel.expenses),
            selectinload(UserModel.incomes),
        ],
    )
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.role == Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot delete admin users",
        )

    # ORM cascade removes subscription, expenses and incomes
    await db.delete(user)
    await db.flush()

    logger.info("User deleted", admin_id=admin.sub, user_id=user_id)

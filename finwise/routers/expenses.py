"""Expense endpoints."""

import math
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.config import get_settings
from finwise.db import get_db
from finwise.models import (
    ExpenseList,
    Pagination,
    Plan,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from finwise.services.currency import is_valid_currency
from finwise.services.subscriptions import SubscriptionRepository
from finwise.services.transactions import UnknownCategoryError, expense_repository

logger = structlog.get_logger()

router = APIRouter(prefix="/expenses", tags=["expenses"])


def check_currency(code: str | None) -> None:
    """Reject codes outside the supported set with a 400."""
    if code is not None and not is_valid_currency(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported currency: {code}",
        )


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


@router.get("", response_model=ExpenseList, summary="List expenses")
async def list_expenses(
    current_user: CurrentUser,
    category_id: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> ExpenseList:
    expenses, total = await expense_repository(db).search(
        current_user.sub,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return ExpenseList(
        expenses=[TransactionResponse.model_validate(e) for e in expenses],
        pagination=Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit)
        ),
    )


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an expense",
    description="FREE plans are limited to a fixed number of expenses.",
)
async def create_expense(
    payload: TransactionCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    check_currency(payload.currency)
    repo = expense_repository(db)

    sub = await SubscriptionRepository(db).get_or_create(current_user.sub)
    if sub.plan == Plan.FREE:
        limit = get_settings().free_plan_expense_limit
        if await repo.count(current_user.sub) >= limit:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Free plan limit reached. Upgrade to Pro for unlimited expenses.",
            )

    try:
        expense = await repo.create(current_user.sub, payload)
    except UnknownCategoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.info("Expense created", user_id=current_user.sub, expense_id=expense.id)
    return TransactionResponse.model_validate(expense)


@router.get("/{expense_id}", response_model=TransactionResponse, summary="Get an expense")
async def get_expense(
    expense_id: str,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    expense = await expense_repository(db).get(current_user.sub, expense_id)
    if expense is None:
        raise not_found("Expense")
    return TransactionResponse.model_validate(expense)


@router.put("/{expense_id}", response_model=TransactionResponse, summary="Update an expense")
async def update_expense(
    expense_id: str,
    payload: TransactionUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    check_currency(payload.currency)
    repo = expense_repository(db)

    expense = await repo.get(current_user.sub, expense_id)
    if expense is None:
        raise not_found("Expense")

    try:
        expense = await repo.update(expense, payload)
    except UnknownCategoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return TransactionResponse.model_validate(expense)


@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an expense",
)
async def delete_expense(
    expense_id: str,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    repo = expense_repository(db)
    expense = await repo.get(current_user.sub, expense_id)
    if expense is None:
        raise not_found("Expense")
    await repo.delete(expense)

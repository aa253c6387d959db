"""Income endpoints."""

import math
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.db import get_db
from finwise.models import (
    IncomeList,
    Pagination,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from finwise.routers.expenses import check_currency, not_found
from finwise.services.transactions import UnknownCategoryError, income_repository

router = APIRouter(prefix="/income", tags=["income"])


@router.get("", response_model=IncomeList, summary="List incomes")
async def list_incomes(
    current_user: CurrentUser,
    category_id: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> IncomeList:
    incomes, total = await income_repository(db).search(
        current_user.sub,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return IncomeList(
        incomes=[TransactionResponse.model_validate(i) for i in incomes],
        pagination=Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit)
        ),
    )


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record income",
)
async def create_income(
    payload: TransactionCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    check_currency(payload.currency)
    try:
        income = await income_repository(db).create(current_user.sub, payload)
    except UnknownCategoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return TransactionResponse.model_validate(income)


@router.get("/{income_id}", response_model=TransactionResponse, summary="Get an income")
async def get_income(
    income_id: str,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    income = await income_repository(db).get(current_user.sub, income_id)
    if income is None:
        raise not_found("Income")
    return TransactionResponse.model_validate(income)


@router.put("/{income_id}", response_model=TransactionResponse, summary="Update an income")
async def update_income(
    income_id: str,
    payload: TransactionUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    check_currency(payload.currency)
    repo = income_repository(db)

    income = await repo.get(current_user.sub, income_id)
    if income is None:
        raise not_found("Income")

    try:
        income = await repo.update(income, payload)
    except UnknownCategoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return TransactionResponse.model_validate(income)


@router.delete(
    "/{income_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an income",
)
async def delete_income(
    income_id: str,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    repo = income_repository(db)
    income = await repo.get(current_user.sub, income_id)
    if income is None:
        raise not_found("Income")
    await repo.delete(income)

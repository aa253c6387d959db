"""Category endpoints. Categories are shared; only admins change them."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import AdminUser, CurrentUser
from finwise.db import get_db
from finwise.db_models import CategoryModel, ExpenseModel, IncomeModel
from finwise.models import CategoryCreate, CategoryKind, CategoryResponse

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryResponse], summary="List categories")
async def list_categories(
    current_user: CurrentUser,
    kind: CategoryKind | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[CategoryResponse]:
    query = select(CategoryModel).order_by(CategoryModel.kind, CategoryModel.name)
    if kind is not None:
        query = query.where(CategoryModel.kind == kind)
    result = await db.execute(query)
    return [CategoryResponse.model_validate(c) for c in result.scalars().all()]


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
)
async def create_category(
    payload: CategoryCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    existing = await db.execute(
        select(CategoryModel).where(
            CategoryModel.kind == payload.kind, CategoryModel.name == payload.name
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category '{payload.name}' already exists",
        )

    category = CategoryModel(**payload.model_dump())
    db.add(category)
    await db.flush()
    return CategoryResponse.model_validate(category)


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an unused category",
)
async def delete_category(
    category_id: str,
    admin: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> None:
    category = await db.get(CategoryModel, category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    in_use = await db.scalar(
        select(func.count())
        .select_from(ExpenseModel)
        .where(ExpenseModel.category_id == category_id)
    )
    in_use = (in_use or 0) + (
        await db.scalar(
            select(func.count())
            .select_from(IncomeModel)
            .where(IncomeModel.category_id == category_id)
        )
        or 0
    )
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category is in use",
        )

    await db.delete(category)
    await db.flush()

"""Owner-scoped CRUD for expenses and incomes."""

from datetime import datetime, timezone
from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.db_models import CategoryModel, ExpenseModel, IncomeModel
from finwise.models import CategoryKind, TransactionCreate, TransactionUpdate

T = TypeVar("T", ExpenseModel, IncomeModel)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise to UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UnknownCategoryError(ValueError):
    """The category id does not exist or has the wrong kind."""


class TransactionRepository(Generic[T]):
    """CRUD over one transaction table, always filtered by owner."""

    def __init__(self, db: AsyncSession, model: type[T], kind: CategoryKind) -> None:
        self.db = db
        self.model = model
        self.kind = kind

    def _filtered(
        self,
        query,
        user_id: str,
        category_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ):
        query = query.where(self.model.user_id == user_id)
        if category_id:
            query = query.where(self.model.category_id == category_id)
        if start_date is not None:
            query = query.where(self.model.date >= as_utc(start_date))
        if end_date is not None:
            query = query.where(self.model.date <= as_utc(end_date))
        return query

    async def search(
        self,
        user_id: str,
        category_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[T], int]:
        """One page, newest first, plus the total matching count."""
        query = self._filtered(
            select(self.model), user_id, category_id, start_date, end_date
        ).order_by(self.model.date.desc())
        result = await self.db.execute(query.offset((page - 1) * limit).limit(limit))
        items = list(result.unique().scalars().all())

        total = await self.db.scalar(
            self._filtered(
                select(func.count()).select_from(self.model),
                user_id,
                category_id,
                start_date,
                end_date,
            )
        )
        return items, int(total or 0)

    async def count(self, user_id: str) -> int:
        total = await self.db.scalar(
            select(func.count()).select_from(self.model).where(self.model.user_id == user_id)
        )
        return int(total or 0)

    async def get(self, user_id: str, item_id: str) -> T | None:
        """Fetch by id only if owned by ``user_id``."""
        result = await self.db.execute(
            select(self.model).where(
                self.model.id == item_id, self.model.user_id == user_id
            )
        )
        return result.unique().scalar_one_or_none()

    async def _check_category(self, category_id: str) -> None:
        category = await self.db.get(CategoryModel, category_id)
        if category is None or category.kind != self.kind:
            raise UnknownCategoryError(f"Unknown {self.kind.value.lower()} category: {category_id}")

    async def create(self, user_id: str, payload: TransactionCreate) -> T:
        await self._check_category(payload.category_id)
        item = self.model(
            user_id=user_id,
            title=payload.title,
            amount=payload.amount,
            description=payload.description,
            category_id=payload.category_id,
            date=as_utc(payload.date) or datetime.now(timezone.utc),
            currency=payload.currency,
        )
        self.db.add(item)
        await self.db.flush()
        return await self._reload(item)

    async def update(self, item: T, payload: TransactionUpdate) -> T:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "category_id" in changes:
            await self._check_category(changes["category_id"])
        if "date" in changes:
            changes["date"] = as_utc(changes["date"])
        for field, value in changes.items():
            setattr(item, field, value)
        await self.db.flush()
        return await self._reload(item)

    async def delete(self, item: T) -> None:
        await self.db.delete(item)
        await self.db.flush()

    async def _reload(self, item: T) -> T:
        await self.db.refresh(item, attribute_names=["category"])
        return item


def expense_repository(db: AsyncSession) -> TransactionRepository[ExpenseModel]:
    return TransactionRepository(db, ExpenseModel, CategoryKind.EXPENSE)


def income_repository(db: AsyncSession) -> TransactionRepository[IncomeModel]:
    return TransactionRepository(db, IncomeModel, CategoryKind.INCOME)

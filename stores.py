"""Persistence layer for categories and transactions.

Stores issue parameterized statements through the request session and never
commit; the calling service owns the unit of work. Every operation checks the
request deadline before touching the database and wraps driver failures in
:class:`errors.StoreError` tagged with the operation name.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Mapping, Optional

from sqlalchemy import Row, delete, func, inspect, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from deadline import Deadline
from errors import Conflict, DeadlineExceeded, InvalidRequest, NotFound, StoreError
from models import Category, Transaction

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def _column_values(obj: object) -> dict[str, object]:
    mapper = inspect(type(obj))
    values: dict[str, object] = {}
    for attr in mapper.column_attrs:
        value = getattr(obj, attr.key)
        if value is not None:
            values[attr.key] = value
    return values


def _duplicate_detail(name: object) -> str:
    return f"Category with name '{name}' already exists for this user."


class _Store:
    def __init__(self, session: Session, deadline: Optional[Deadline] = None) -> None:
        self.session = session
        self.deadline = deadline or Deadline()

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        try:
            self.deadline.check(name)
        except DeadlineExceeded:
            logger.warning(f"store_deadline: operation={name}")
            raise
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(f"store_error: operation={name} error={exc}")
            raise StoreError(name, exc) from exc

    @contextmanager
    def _unique_name(self, detail: str) -> Iterator[None]:
        """Turn a per-owner name uniqueness violation into a conflict."""
        try:
            yield
        except IntegrityError as exc:
            message = str(exc.orig)
            if "uq_category_owner_" in message or "UNIQUE constraint" in message:
                self.session.rollback()
                raise Conflict(detail) from exc
            raise


class CategoryStore(_Store):
    def get_all(self, owner_id: int) -> list[Category]:
        with self._operation("CategoryStore.get_all"):
            stmt = (
                select(Category)
                .where(Category.created_by == owner_id)
                .order_by(Category.name, Category.id)
            )
            return list(self.session.scalars(stmt).all())

    def get_by_id(self, category_id: int) -> Category:
        """Fetch by primary key only; callers verify ownership themselves."""
        with self._operation("CategoryStore.get_by_id"):
            category = self.session.get(Category, category_id)
        if category is None:
            raise NotFound(f"Category {category_id} not found.")
        return category

    def get_by_id_and_owner(
        self, category_id: int, owner_id: int, *, for_update: bool = False
    ) -> Category:
        with self._operation("CategoryStore.get_by_id_and_owner"):
            stmt = select(Category).where(
                Category.id == category_id, Category.created_by == owner_id
            )
            if for_update:
                stmt = stmt.with_for_update()
            category = self.session.scalar(stmt)
        if category is None:
            raise NotFound(f"Category {category_id} not found.")
        return category

    def get_by_owner_and_name(self, owner_id: int, name: str) -> Category:
        with self._operation("CategoryStore.get_by_owner_and_name"):
            stmt = (
                select(Category)
                .where(
                    Category.created_by == owner_id,
                    func.lower(Category.name) == name.lower(),
                )
                .order_by(Category.id)
                .limit(1)
            )
            category = self.session.scalar(stmt)
        if category is None:
            raise NotFound(f"Category '{name}' not found.")
        return category

    def create(self, category: Category) -> Category:
        with self._operation("CategoryStore.create"):
            self.session.add(category)
            with self._unique_name(_duplicate_detail(category.name)):
                self.session.flush()
        return category

    def update(
        self, target: Category, changes: Optional[Mapping[str, object]] = None
    ) -> None:
        """Write ``changes`` when given, otherwise every non-null column of ``target``."""
        with self._operation("CategoryStore.update"):
            if not target.id:
                raise InvalidRequest("Category ID is missing.")
            values = dict(changes) if changes is not None else _column_values(target)
            values.pop("id", None)
            if not values:
                return
            with self._unique_name(_duplicate_detail(values.get("name", target.name))):
                self.session.execute(
                    update(Category).where(Category.id == target.id).values(**values)
                )

    def delete_by_id(self, category_id: int) -> None:
        with self._operation("CategoryStore.delete_by_id"):
            self.session.execute(
                update(Transaction)
                .where(Transaction.category_id == category_id)
                .values(category_id=None)
            )
            self.session.execute(delete(Category).where(Category.id == category_id))


class TransactionStore(_Store):
    def get_by_id_and_owner(
        self, transaction_id: int, owner_id: int, *, for_update: bool = False
    ) -> Transaction:
        with self._operation("TransactionStore.get_by_id_and_owner"):
            stmt = select(Transaction).where(
                Transaction.id == transaction_id, Transaction.user_id == owner_id
            )
            if for_update:
                stmt = stmt.with_for_update()
            txn = self.session.scalar(stmt)
        if txn is None:
            raise NotFound(f"Transaction {transaction_id} not found.")
        return txn

    def get_all_by_owner(self, owner_id: int) -> list[Row]:
        """Rows of ``(Transaction, category_name)``; the name is None when uncategorized."""
        with self._operation("TransactionStore.get_all_by_owner"):
            stmt = (
                select(Transaction, Category.name.label("category_name"))
                .outerjoin(Category, Transaction.category_id == Category.id)
                .where(Transaction.user_id == owner_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            )
            return list(self.session.execute(stmt).all())

    def get_daily_summary(self, owner_id: int, start: date, end: date) -> list[Row]:
        with self._operation("TransactionStore.get_daily_summary"):
            total = func.sum(Transaction.amount).label("total_amount")
            stmt = (
                select(Transaction.transaction_date, Transaction.type, total)
                .where(
                    Transaction.user_id == owner_id,
                    Transaction.transaction_date.between(start, end),
                )
                .group_by(Transaction.transaction_date, Transaction.type)
                .order_by(Transaction.transaction_date.asc(), Transaction.type.asc())
            )
            return list(self.session.execute(stmt).all())

    def get_summary_by_category_and_type(
        self, owner_id: int, start: date, end: date
    ) -> list[Row]:
        with self._operation("TransactionStore.get_summary_by_category_and_type"):
            label = func.coalesce(
                Category.name, literal(UNCATEGORIZED, literal_execute=True)
            ).label("category_name")
            total = func.sum(Transaction.amount).label("total_amount")
            stmt = (
                select(label, Transaction.type, total)
                .select_from(Transaction)
                .outerjoin(Category, Transaction.category_id == Category.id)
                .where(
                    Transaction.user_id == owner_id,
                    Transaction.transaction_date.between(start, end),
                )
                .group_by(label, Transaction.type)
                .order_by(label.asc(), Transaction.type.asc())
            )
            return list(self.session.execute(stmt).all())

    def create(self, transaction: Transaction) -> Transaction:
        with self._operation("TransactionStore.create"):
            self.session.add(transaction)
            self.session.flush()
        return transaction

    def update(
        self, target: Transaction, changes: Optional[Mapping[str, object]] = None
    ) -> None:
        """Like :meth:`CategoryStore.update`, but the statement is also scoped by owner.

        ``None`` values in ``changes`` are written, so they clear nullable columns.
        """
        with self._operation("TransactionStore.update"):
            if not target.id or not target.user_id:
                raise InvalidRequest("Transaction ID or User ID is missing.")
            values = dict(changes) if changes is not None else _column_values(target)
            values.pop("id", None)
            values.pop("user_id", None)
            if not values:
                return
            self.session.execute(
                update(Transaction)
                .where(
                    Transaction.id == target.id,
                    Transaction.user_id == target.user_id,
                )
                .values(**values)
            )
            self.session.flush()

    def delete_by_id_and_owner(self, transaction_id: int, owner_id: int) -> None:
        with self._operation("TransactionStore.delete_by_id_and_owner"):
            if not owner_id:
                raise InvalidRequest("User ID is missing for delete operation.")
            self.session.execute(
                delete(Transaction).where(
                    Transaction.id == transaction_id,
                    Transaction.user_id == owner_id,
                )
            )

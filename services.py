from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deadline import Deadline
from errors import Conflict, InvalidRequest, NotFound, StoreError, Unauthorized
from models import Category, Transaction, utcnow
from periods import (
    format_iso_date,
    format_local_timestamp,
    parse_iso_date,
    resolve_period,
)
from schemas import (
    CategoryIn,
    CategoryOut,
    CategorySummaryOut,
    DailySummaryOut,
    TransactionIn,
    TransactionOut,
)
from stores import UNCATEGORIZED, CategoryStore, TransactionStore

logger = logging.getLogger(__name__)


def _require_owner(owner_id: Optional[int], operation: str) -> int:
    if not owner_id:
        logger.warning(f"{operation}: rejected reason=missing_user_id")
        raise InvalidRequest("User ID is required")
    return owner_id


class _Service:
    def __init__(self, session: Session, deadline: Optional[Deadline] = None) -> None:
        self.session = session
        self.deadline = deadline or Deadline()

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        """Commit everything done inside the block as one transaction."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"{operation}: commit_failed error={exc}")
            raise StoreError(operation, exc) from exc
        except Exception:
            self.session.rollback()
            raise


class CategoryService(_Service):
    def __init__(self, session: Session, deadline: Optional[Deadline] = None) -> None:
        super().__init__(session, deadline)
        self.store = CategoryStore(session, self.deadline)

    @staticmethod
    def to_out(category: Category) -> CategoryOut:
        return CategoryOut(
            id=category.id,
            name=category.name,
            created_by=category.created_by,
            created_at=format_local_timestamp(category.created_at),
            updated_at=format_local_timestamp(category.updated_at),
        )

    def _ensure_name_available(
        self, owner_id: int, name: str, exclude_id: Optional[int] = None
    ) -> None:
        try:
            existing = self.store.get_by_owner_and_name(owner_id, name)
        except NotFound:
            return
        if existing.id != exclude_id:
            logger.warning(
                f"category_name_taken: owner_id={owner_id} name={name!r} existing_id={existing.id}"
            )
            raise Conflict(
                f"Category with name '{name}' already exists for this user."
            )

    def create(self, owner_id: int, data: CategoryIn) -> CategoryOut:
        owner_id = _require_owner(owner_id, "category_create")
        name = data.name.strip()
        if not name:
            raise InvalidRequest("Category name cannot be empty")
        with self._unit_of_work("CategoryService.create"):
            self._ensure_name_available(owner_id, name)
            now = utcnow()
            category = self.store.create(
                Category(created_by=owner_id, name=name, created_at=now, updated_at=now)
            )
        logger.info(f"category_create: owner_id={owner_id} category_id={category.id}")
        return self.to_out(category)

    def list(self, owner_id: int) -> list[CategoryOut]:
        owner_id = _require_owner(owner_id, "category_list")
        return [self.to_out(category) for category in self.store.get_all(owner_id)]

    def update(self, category_id: int, owner_id: int, data: CategoryIn) -> CategoryOut:
        owner_id = _require_owner(owner_id, "category_update")
        name = data.name.strip()
        if not name:
            raise InvalidRequest("Category name cannot be empty")
        with self._unit_of_work("CategoryService.update"):
            category = self.store.get_by_id_and_owner(
                category_id, owner_id, for_update=True
            )
            if category.name != name:
                self._ensure_name_available(owner_id, name, exclude_id=category.id)
            self.store.update(category, {"name": name, "updated_at": utcnow()})
        logger.info(f"category_update: owner_id={owner_id} category_id={category_id}")
        return self.to_out(category)

    def delete(self, category_id: int, owner_id: int) -> None:
        owner_id = _require_owner(owner_id, "category_delete")
        with self._unit_of_work("CategoryService.delete"):
            self.store.get_by_id_and_owner(category_id, owner_id, for_update=True)
            self.store.delete_by_id(category_id)
        logger.info(f"category_delete: owner_id={owner_id} category_id={category_id}")


class TransactionService(_Service):
    def __init__(self, session: Session, deadline: Optional[Deadline] = None) -> None:
        super().__init__(session, deadline)
        self.store = TransactionStore(session, self.deadline)
        self.categories = CategoryStore(session, self.deadline)

    @staticmethod
    def to_out(txn: Transaction, category_name: Optional[str]) -> TransactionOut:
        return TransactionOut(
            id=txn.id,
            user_id=txn.user_id,
            category_id=txn.category_id,
            category_name=category_name,
            amount=txn.amount,
            type=txn.type,
            description=txn.description,
            transaction_date=format_iso_date(txn.transaction_date),
            created_at=format_local_timestamp(txn.created_at),
            updated_at=format_local_timestamp(txn.updated_at),
        )

    def _resolve_category(
        self, owner_id: int, category_id: Optional[int]
    ) -> Optional[Category]:
        """Validate a requested category; absent or non-positive ids mean no category."""
        if category_id is None or category_id <= 0:
            return None
        try:
            category = self.categories.get_by_id(category_id)
        except NotFound as exc:
            logger.warning(
                f"transaction_category_invalid: owner_id={owner_id} category_id={category_id}"
            )
            raise InvalidRequest("Invalid Category ID provided.") from exc
        if category.created_by != owner_id:
            logger.warning(
                f"transaction_category_foreign: owner_id={owner_id} category_id={category_id}"
            )
            raise Unauthorized("You are not authorized to use this category.")
        return category

    @staticmethod
    def _check_amount(amount: Decimal) -> None:
        if amount is None or amount <= 0:
            logger.warning(f"transaction_amount_rejected: amount={amount}")
            raise InvalidRequest("Amount must be greater than zero.")

    def create(self, owner_id: int, data: TransactionIn) -> TransactionOut:
        owner_id = _require_owner(owner_id, "transaction_create")
        self._check_amount(data.amount)
        category = self._resolve_category(owner_id, data.category_id)
        transaction_date = parse_iso_date(data.transaction_date)
        with self._unit_of_work("TransactionService.create"):
            now = utcnow()
            txn = self.store.create(
                Transaction(
                    user_id=owner_id,
                    category_id=category.id if category else None,
                    amount=data.amount,
                    type=data.type,
                    description=data.description,
                    transaction_date=transaction_date,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info(
            f"transaction_create: owner_id={owner_id} transaction_id={txn.id} type={txn.type.value}"
        )
        return self.to_out(txn, category.name if category else None)

    def list(self, owner_id: int) -> list[TransactionOut]:
        owner_id = _require_owner(owner_id, "transaction_list")
        return [
            self.to_out(row.Transaction, row.category_name)
            for row in self.store.get_all_by_owner(owner_id)
        ]

    def update(
        self, transaction_id: int, owner_id: int, data: TransactionIn
    ) -> TransactionOut:
        """Replace a transaction's editable fields.

        Clear-on-absent: unlike ``create``, where a missing ``category_id`` simply
        means "no category", a missing ``category_id`` here clears the category the
        transaction had. A blank ``transaction_date`` keeps the stored date.
        """
        owner_id = _require_owner(owner_id, "transaction_update")
        self._check_amount(data.amount)
        with self._unit_of_work("TransactionService.update"):
            txn = self.store.get_by_id_and_owner(
                transaction_id, owner_id, for_update=True
            )
            category = self._resolve_category(owner_id, data.category_id)
            if data.transaction_date.strip():
                transaction_date = parse_iso_date(data.transaction_date)
            else:
                transaction_date = txn.transaction_date
            self.store.update(
                txn,
                {
                    "amount": data.amount,
                    "type": data.type,
                    "transaction_date": transaction_date,
                    "description": data.description,
                    "category_id": category.id if category else None,
                    "updated_at": utcnow(),
                },
            )
        logger.info(
            f"transaction_update: owner_id={owner_id} transaction_id={transaction_id}"
        )
        return self.to_out(txn, category.name if category else None)

    def delete(self, transaction_id: int, owner_id: int) -> None:
        owner_id = _require_owner(owner_id, "transaction_delete")
        with self._unit_of_work("TransactionService.delete"):
            self.store.get_by_id_and_owner(transaction_id, owner_id, for_update=True)
            self.store.delete_by_id_and_owner(transaction_id, owner_id)
        logger.info(
            f"transaction_delete: owner_id={owner_id} transaction_id={transaction_id}"
        )

    def daily_summary(
        self, owner_id: int, start_date: str, end_date: str
    ) -> list[DailySummaryOut]:
        owner_id = _require_owner(owner_id, "transaction_daily_summary")
        period = resolve_period(start_date, end_date)
        rows = self.store.get_daily_summary(owner_id, period.start, period.end)
        return [
            DailySummaryOut(
                transaction_date=format_iso_date(row.transaction_date),
                type=row.type,
                total_amount=row.total_amount,
            )
            for row in rows
        ]

    def summary_by_category_and_type(
        self, owner_id: int, start_date: str, end_date: str
    ) -> list[CategorySummaryOut]:
        owner_id = _require_owner(owner_id, "transaction_category_summary")
        period = resolve_period(start_date, end_date)
        rows = self.store.get_summary_by_category_and_type(
            owner_id, period.start, period.end
        )
        return [
            CategorySummaryOut(
                category_name=row.category_name or UNCATEGORIZED,
                type=row.type,
                total_amount=row.total_amount,
            )
            for row in rows
        ]

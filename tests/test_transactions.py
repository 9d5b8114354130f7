from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base, enable_sqlite_foreign_keys
from errors import InvalidRequest, NotFound, Unauthorized
from models import Transaction, TransactionType, User
from schemas import CategoryIn, TransactionIn
from services import CategoryService, TransactionService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    return Session(engine)


def add_user(session: Session, name: str) -> int:
    user = User(name=name, email=f"{name.lower()}@example.com")
    session.add(user)
    session.commit()
    return user.id


def expense(amount: str, on: str, **kwargs) -> TransactionIn:
    return TransactionIn(
        amount=Decimal(amount),
        type=TransactionType.expense,
        transaction_date=on,
        **kwargs,
    )


def test_create_without_category_lists_null_category() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    txns = TransactionService(session)

    created = txns.create(alice, expense("50.00", "2024-01-15"))

    assert created.category_id is None
    assert created.category_name is None
    listed = txns.list(alice)
    assert len(listed) == 1
    row = listed[0]
    assert row.id == created.id
    assert row.user_id == alice
    assert row.amount == Decimal("50.00")
    assert row.type == TransactionType.expense
    assert row.transaction_date == "2024-01-15"
    assert row.description is None
    assert row.category_name is None


def test_round_trip_with_category_and_description() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    salary = CategoryService(session).create(alice, CategoryIn(name="Salary"))
    txns = TransactionService(session)

    txns.create(
        alice,
        TransactionIn(
            amount=Decimal("2500.75"),
            type=TransactionType.income,
            description="June payroll",
            transaction_date="2024-06-28",
            category_id=salary.id,
        ),
    )

    [row] = txns.list(alice)
    assert row.amount == Decimal("2500.75")
    assert row.type == TransactionType.income
    assert row.description == "June payroll"
    assert row.transaction_date == "2024-06-28"
    assert row.category_id == salary.id
    assert row.category_name == "Salary"


def test_non_positive_category_id_is_stored_as_null() -> None:
    session = make_session()
    alice = add_user(session, "Alice")

    created = TransactionService(session).create(
        alice, expense("3.20", "2024-02-01", category_id=0)
    )
    assert created.category_id is None
    stored = session.get(Transaction, created.id)
    assert stored.category_id is None


@pytest.mark.parametrize("amount", ["0", "-1.00", "10.001"])
def test_invalid_amounts_are_rejected_before_storage(amount: str) -> None:
    with pytest.raises(ValidationError):
        expense(amount, "2024-01-01")


def test_service_rejects_non_positive_amount_from_unvalidated_model(caplog) -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    data = TransactionIn.model_construct(
        amount=Decimal("0"),
        type=TransactionType.expense,
        description=None,
        transaction_date="2024-01-01",
        category_id=None,
    )

    with pytest.raises(InvalidRequest, match="greater than zero"):
        TransactionService(session).create(alice, data)
    assert "transaction_amount_rejected" in caplog.text
    assert session.scalars(select(Transaction)).all() == []


def test_category_of_another_owner_is_unauthorized() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    bob = add_user(session, "Bob")
    bobs = CategoryService(session).create(bob, CategoryIn(name="Food"))
    txns = TransactionService(session)

    with pytest.raises(Unauthorized):
        txns.create(alice, expense("10.00", "2024-01-01", category_id=bobs.id))

    mine = txns.create(alice, expense("10.00", "2024-01-01"))
    with pytest.raises(Unauthorized):
        txns.update(mine.id, alice, expense("10.00", "", category_id=bobs.id))

    assert txns.list(alice)[0].category_id is None


def test_unknown_category_is_invalid_request() -> None:
    session = make_session()
    alice = add_user(session, "Alice")

    with pytest.raises(InvalidRequest, match="Invalid Category ID"):
        TransactionService(session).create(
            alice, expense("10.00", "2024-01-01", category_id=404)
        )


@pytest.mark.parametrize(
    "value", ["", "2024/01/15", "15-01-2024", "2024-1-5", "2024-02-30", "20240115"]
)
def test_malformed_dates_are_rejected_on_create(value: str) -> None:
    session = make_session()
    alice = add_user(session, "Alice")

    with pytest.raises(InvalidRequest, match="YYYY-MM-DD"):
        TransactionService(session).create(alice, expense("1.00", value))


def test_malformed_date_is_rejected_on_update() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    txns = TransactionService(session)
    created = txns.create(alice, expense("1.00", "2024-01-01"))

    with pytest.raises(InvalidRequest, match="YYYY-MM-DD"):
        txns.update(created.id, alice, expense("1.00", "01/02/2024"))
    assert txns.list(alice)[0].transaction_date == "2024-01-01"


def test_update_replaces_fields_and_keeps_blank_date() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    food = CategoryService(session).create(alice, CategoryIn(name="Food"))
    txns = TransactionService(session)
    created = txns.create(
        alice, expense("20.00", "2024-04-10", description="Groceries")
    )

    updated = txns.update(
        created.id,
        alice,
        TransactionIn(
            amount=Decimal("22.40"),
            type=TransactionType.expense,
            description="Groceries and snacks",
            transaction_date="",
            category_id=food.id,
        ),
    )

    assert updated.amount == Decimal("22.40")
    assert updated.transaction_date == "2024-04-10"
    assert updated.category_name == "Food"
    [row] = txns.list(alice)
    assert row.description == "Groceries and snacks"
    assert row.category_id == food.id


def test_update_without_category_clears_it() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    food = CategoryService(session).create(alice, CategoryIn(name="Food"))
    txns = TransactionService(session)
    created = txns.create(
        alice, expense("8.00", "2024-04-10", description="Snack", category_id=food.id)
    )

    txns.update(created.id, alice, expense("8.00", "2024-04-11"))

    [row] = txns.list(alice)
    assert row.category_id is None
    assert row.category_name is None
    assert row.description is None
    assert row.transaction_date == "2024-04-11"


def test_update_and_delete_of_other_owners_transaction_is_not_found() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    bob = add_user(session, "Bob")
    txns = TransactionService(session)
    bobs = txns.create(bob, expense("30.00", "2024-01-01"))

    with pytest.raises(NotFound):
        txns.update(bobs.id, alice, expense("1.00", "2024-01-02"))
    with pytest.raises(NotFound):
        txns.delete(bobs.id, alice)

    [row] = txns.list(bob)
    assert row.amount == Decimal("30.00")
    assert row.transaction_date == "2024-01-01"


def test_delete_removes_only_the_owned_row() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    txns = TransactionService(session)
    first = txns.create(alice, expense("1.00", "2024-01-01"))
    second = txns.create(alice, expense("2.00", "2024-01-02"))

    txns.delete(first.id, alice)

    assert [t.id for t in txns.list(alice)] == [second.id]
    with pytest.raises(NotFound):
        txns.delete(first.id, alice)


def test_list_orders_by_date_then_id_descending() -> None:
    session = make_session()
    alice = add_user(session, "Alice")
    bob = add_user(session, "Bob")
    txns = TransactionService(session)
    early = txns.create(alice, expense("1.00", "2024-01-01"))
    late_a = txns.create(alice, expense("2.00", "2024-03-01"))
    late_b = txns.create(alice, expense("3.00", "2024-03-01"))
    txns.create(bob, expense("4.00", "2024-05-01"))

    assert [t.id for t in txns.list(alice)] == [late_b.id, late_a.id, early.id]


def test_missing_owner_is_invalid_request() -> None:
    session = make_session()
    txns = TransactionService(session)

    with pytest.raises(InvalidRequest, match="User ID is required"):
        txns.create(0, expense("1.00", "2024-01-01"))
    with pytest.raises(InvalidRequest):
        txns.list(None)

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backoffice import config, models, schemas
from backoffice.errors import (
    OrderNotFound,
    TransactionAlreadyExists,
    TransactionNotFound,
    ValidationError,
)
from backoffice.orders import OrderService, day_bounds
from backoffice.transactions import TransactionService


def make_order(**overrides):
    data = {
        "name": "Bread",
        "description": "Sourdough loaf",
        "price": Decimal("100"),
        "quantity": 2,
        "customer_phone": "+15550001",
    }
    data.update(overrides)
    return schemas.OrderCreate(**data)


def count_transactions(session_factory, order_id):
    with session_factory() as s:
        return s.scalar(select(func.count()).select_from(models.Transaction).where(models.Transaction.order_id == order_id))


def test_create_order_creates_customer_and_transaction_data(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order(price=Decimal("400"), quantity=3))

    assert created.order.id is not None
    assert created.order.price == Decimal("400.00")
    assert created.transaction_data.amount == Decimal("1200.00")
    assert created.transaction_data.order_id == created.order.id

    with session_factory() as s:
        customer = s.scalars(select(models.Customer).where(models.Customer.phone == "+15550001")).one()
        assert customer.role == "customer"
        assert created.order.customer_id == customer.id


def test_create_order_reuses_customer_by_phone(session_factory):
    service = OrderService(session_factory)
    first = service.create_order(make_order())
    second = service.create_order(make_order(name="Milk"))
    assert first.order.customer_id == second.order.customer_id


def test_price_rounded_half_up(session_factory):
    created = OrderService(session_factory).create_order(make_order(price=Decimal("2.675"), quantity=1))
    assert str(created.order.price) == "2.68"


def test_update_price_requires_transaction_update(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order(price=Decimal("100"), quantity=2))

    updated = service.update_order(created.order.id, schemas.OrderUpdate(price=Decimal("150")))
    assert updated.requires_transaction_update is True
    assert updated.new_amount == Decimal("300")
    assert updated.order.price == Decimal("150")
    assert updated.order.updated_at >= created.order.updated_at


def test_update_quantity_uses_existing_price(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order(price=Decimal("12.50"), quantity=2))
    updated = service.update_order(created.order.id, schemas.OrderUpdate(quantity=5))
    assert updated.new_amount == Decimal("62.50")


def test_update_description_only_is_noop_for_transaction(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order())
    updated = service.update_order(created.order.id, schemas.OrderUpdate(description="Rye"))
    assert updated.requires_transaction_update is False
    assert updated.new_amount is None
    assert updated.order.description == "Rye"


def test_update_moves_order_to_customer_by_phone(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order())
    updated = service.update_order(created.order.id, schemas.OrderUpdate(customer_phone="+15550002"))
    assert updated.order.customer_id != created.order.customer_id


def test_update_missing_order(session_factory):
    with pytest.raises(OrderNotFound):
        OrderService(session_factory).update_order("missing", schemas.OrderUpdate(price=Decimal("1")))


def test_update_rejects_unknown_and_null_fields():
    with pytest.raises(ValueError):
        schemas.OrderUpdate(amount=Decimal("5"))
    with pytest.raises(ValueError):
        schemas.OrderUpdate(price=None)


def test_delete_order(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order())
    deleted = service.delete_order(created.order.id)
    assert deleted.requires_transaction_deletion is True
    assert deleted.deleted_order.id == created.order.id
    with pytest.raises(OrderNotFound):
        service.delete_order(created.order.id)


def test_orders_by_user(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order())
    service.create_order(make_order(customer_phone="+15550009"))

    first = service.get_orders_by_user(phone="+15550001")
    second = service.get_orders_by_user(phone="+15550001")
    assert [o.id for o in first] == [o.id for o in second] == [created.order.id]

    by_id = service.get_orders_by_user(customer_id=created.order.customer_id)
    assert [o.id for o in by_id] == [created.order.id]


def test_orders_by_user_unknown_phone_is_empty(session_factory):
    assert OrderService(session_factory).get_orders_by_user(phone="+19999999") == []


def test_day_bounds():
    start, end = day_bounds(date(2024, 5, 1))
    assert start == datetime(2024, 5, 1, 0, 0, 0)
    assert end == datetime(2024, 5, 1, 23, 59, 59, 999000)

    # 22:00 at UTC-5 is already the next day in UTC
    start, _ = day_bounds(datetime(2024, 5, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5))))
    assert start == datetime(2024, 5, 2)


def test_orders_by_date_inclusive_bounds(session_factory):
    service = OrderService(session_factory)
    stamps = {
        "first": datetime(2024, 5, 1, 0, 0, 0),
        "last": datetime(2024, 5, 1, 23, 59, 59, 999000),
        "before": datetime(2024, 4, 30, 23, 59, 59, 999000),
        "after": datetime(2024, 5, 2, 0, 0, 0),
    }
    ids = {}
    for label, stamp in stamps.items():
        order_id = service.create_order(make_order(name=label)).order.id
        with session_factory() as s:
            s.get(models.Order, order_id).created_at = stamp
            s.commit()
        ids[label] = order_id

    found = {o.id for o in service.get_orders_by_date(date(2024, 5, 1))}
    assert found == {ids["first"], ids["last"]}


def test_create_transaction_for_order(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    transaction = TransactionService(session_factory).create_transaction_for_order(order.id, Decimal("200"))
    assert transaction.type == "income"
    assert transaction.amount == Decimal("200.00")
    assert transaction.order_id == order.id


def test_second_transaction_for_order_rejected(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    service = TransactionService(session_factory)
    service.create_transaction_for_order(order.id, Decimal("200"))
    with pytest.raises(TransactionAlreadyExists):
        service.create_transaction_for_order(order.id, Decimal("200"))
    assert count_transactions(session_factory, order.id) == 1


def test_transaction_for_missing_order(session_factory):
    with pytest.raises(OrderNotFound):
        TransactionService(session_factory).create_transaction_for_order("nope", Decimal("1"))


def test_transaction_input_validated(session_factory):
    service = TransactionService(session_factory)
    with pytest.raises(ValidationError):
        service.create_transaction_for_order("any", Decimal("1"), type="refund")
    with pytest.raises(ValidationError):
        service.create_transaction_for_order("any", Decimal("-1"))
    with pytest.raises(ValidationError):
        service.create_transaction_for_order("any", Decimal("0"))
    with pytest.raises(ValidationError):
        service.update_transaction_for_order("any", Decimal("0.004"))


def test_update_and_delete_transaction_for_order(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    service = TransactionService(session_factory)
    created = service.create_transaction_for_order(order.id, Decimal("200"), type="expense")

    updated = service.update_transaction_for_order(order.id, Decimal("300"))
    assert updated.id == created.id
    assert updated.amount == Decimal("300.00")
    assert updated.type == "expense"

    assert service.delete_transaction_for_order(order.id) == {"success": True, "order_id": order.id}
    with pytest.raises(TransactionNotFound):
        service.delete_transaction_for_order(order.id)
    with pytest.raises(TransactionNotFound):
        service.update_transaction_for_order(order.id, Decimal("1"))


def test_find_transaction(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    service = TransactionService(session_factory)
    created = service.create_transaction_for_order(order.id, Decimal("200"))

    assert service.find_transaction() is None
    assert service.find_transaction(transaction_id=created.id).id == created.id
    assert service.find_transaction(order_id=order.id).id == created.id
    # unknown id falls through to the order lookup
    assert service.find_transaction(transaction_id="unknown", order_id=order.id).id == created.id
    assert service.find_transaction(transaction_id="unknown") is None


def test_delete_transaction_by_id(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    service = TransactionService(session_factory)
    created = service.create_transaction_for_order(order.id, Decimal("200"))

    service.delete_transaction(created.id)
    assert count_transactions(session_factory, order.id) == 0
    with pytest.raises(TransactionNotFound):
        service.delete_transaction(created.id)


def test_default_transaction_type_from_settings(session_factory):
    order = OrderService(session_factory).create_order(make_order()).order
    config.override(default_transaction_type="expense")
    try:
        transaction = TransactionService(session_factory).create_transaction_for_order(order.id, Decimal("5"))
    finally:
        config.reset()
    assert transaction.type == "expense"
    assert config.get_settings().default_transaction_type == "income"


def test_update_amount_derives_from_rounded_price(session_factory):
    service = OrderService(session_factory)
    created = service.create_order(make_order(price=Decimal("1"), quantity=3))
    updated = service.update_order(created.order.id, schemas.OrderUpdate(price=Decimal("0.335")))
    assert updated.order.price == Decimal("0.34")
    assert updated.new_amount == updated.order.price * updated.order.quantity

"""Order service: owns Order rows and derives the data for their paired Transaction."""
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models, schemas
from .db import SessionFactory, SessionLocal, unit_of_work
from .errors import CustomerNotFound, OrderNotFound
from .utils import round_amount, utcnow

logger = structlog.get_logger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)


@dataclass
class TransactionData:
    amount: Decimal
    order_id: str


@dataclass
class OrderCreated:
    order: models.Order
    transaction_data: TransactionData


@dataclass
class OrderUpdated:
    order: models.Order
    requires_transaction_update: bool
    new_amount: Optional[Decimal] = None


@dataclass
class OrderDeleted:
    deleted_order: models.Order
    requires_transaction_deletion: bool = True


def day_bounds(day) -> tuple[datetime, datetime]:
    """Return the first and last millisecond of the UTC calendar day holding ``day``."""
    if isinstance(day, datetime):
        if day.tzinfo is not None:
            day = day.astimezone(timezone.utc)
        day = day.date()
    elif not isinstance(day, date):
        raise TypeError(f"expected date or datetime, got {type(day).__name__}")
    return datetime.combine(day, time.min), datetime.combine(day, END_OF_DAY)


def find_or_create_customer(db: Session, phone: str) -> models.Customer:
    customer = db.scalars(select(models.Customer).where(models.Customer.phone == phone)).first()
    if customer is None:
        customer = models.Customer(phone=phone, role="customer")
        db.add(customer)
        db.flush()
        logger.info("customer created from order", customer_id=customer.id)
    return customer


class OrderService:
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self.session_factory = session_factory

    def create_order(self, data: schemas.OrderCreate, session: Optional[Session] = None) -> OrderCreated:
        with unit_of_work(self.session_factory, session) as db:
            customer = None
            if data.customer_id:
                customer = db.get(models.Customer, data.customer_id)
            if customer is None:
                customer = find_or_create_customer(db, data.customer_phone)

            now = utcnow()
            order = models.Order(
                name=data.name,
                description=data.description,
                price=round_amount(data.price),
                quantity=data.quantity,
                category=data.category,
                customer_id=customer.id,
                created_at=now,
                updated_at=now,
            )
            db.add(order)
            db.flush()

        logger.info("order created", order_id=order.id, customer_id=order.customer_id)
        amount = round_amount(order.price * order.quantity)
        return OrderCreated(order=order, transaction_data=TransactionData(amount=amount, order_id=order.id))

    def update_order(self, order_id: str, updates: schemas.OrderUpdate, session: Optional[Session] = None) -> OrderUpdated:
        changes = updates.model_dump(exclude_unset=True)
        with unit_of_work(self.session_factory, session) as db:
            order = db.get(models.Order, order_id)
            if order is None:
                raise OrderNotFound(order_id)

            phone = changes.pop("customer_phone", None)
            if "customer_id" in changes:
                if db.get(models.Customer, changes["customer_id"]) is None:
                    raise CustomerNotFound(f"Customer not found: {changes['customer_id']}")
            elif phone is not None:
                changes["customer_id"] = find_or_create_customer(db, phone).id

            if "price" in changes:
                changes["price"] = round_amount(changes["price"])
            # the amount derives from the price as stored
            requires_update = "price" in changes or "quantity" in changes
            new_amount = None
            if requires_update:
                price = changes.get("price", order.price)
                quantity = changes.get("quantity", order.quantity)
                new_amount = round_amount(Decimal(price) * quantity)

            for field in schemas.ORDER_UPDATABLE_FIELDS.intersection(changes):
                setattr(order, field, changes[field])
            order.updated_at = utcnow()

        logger.info("order updated", order_id=order_id, fields=sorted(changes), requires_transaction_update=requires_update)
        return OrderUpdated(order=order, requires_transaction_update=requires_update, new_amount=new_amount)

    def delete_order(self, order_id: str, session: Optional[Session] = None) -> OrderDeleted:
        with unit_of_work(self.session_factory, session) as db:
            order = db.get(models.Order, order_id)
            if order is None:
                raise OrderNotFound(order_id)
            db.delete(order)

        logger.info("order deleted", order_id=order_id)
        return OrderDeleted(deleted_order=order)

    def get_order(self, order_id: str) -> models.Order:
        with unit_of_work(self.session_factory) as db:
            order = db.get(models.Order, order_id)
            if order is None:
                raise OrderNotFound(order_id)
            return order

    def get_orders_by_user(self, phone: Optional[str] = None, customer_id: Optional[str] = None) -> List[models.Order]:
        with unit_of_work(self.session_factory) as db:
            if customer_id is None:
                if phone is None:
                    return []
                customer = db.scalars(select(models.Customer).where(models.Customer.phone == phone)).first()
                if customer is None:
                    return []
                customer_id = customer.id
            stmt = select(models.Order).where(models.Order.customer_id == customer_id).order_by(models.Order.created_at, models.Order.id)
            return list(db.scalars(stmt))

    def get_orders_by_date(self, day) -> List[models.Order]:
        start, end = day_bounds(day)
        with unit_of_work(self.session_factory) as db:
            stmt = (
                select(models.Order)
                .where(models.Order.created_at >= start, models.Order.created_at <= end)
                .order_by(models.Order.created_at, models.Order.id)
            )
            return list(db.scalars(stmt))

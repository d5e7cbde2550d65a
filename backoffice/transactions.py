"""Transaction service. Every transaction hangs off exactly one order."""
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from . import config, models
from .db import SessionFactory, SessionLocal, unit_of_work
from .errors import OrderNotFound, TransactionAlreadyExists, TransactionNotFound, ValidationError
from .utils import round_amount, utcnow

logger = structlog.get_logger(__name__)

TRANSACTION_TYPES = ("income", "expense")


def _checked_amount(amount) -> Decimal:
    value = round_amount(amount)
    if value <= 0:
        raise ValidationError("amount must be greater than 0")
    return value


def _for_order(db: Session, order_id: str) -> Optional[models.Transaction]:
    stmt = select(models.Transaction).where(models.Transaction.order_id == order_id)
    return db.scalars(stmt).first()


class TransactionService:
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self.session_factory = session_factory

    def create_transaction_for_order(
        self,
        order_id: str,
        amount,
        type: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> models.Transaction:
        type = type or config.get_settings().default_transaction_type
        if type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction type must be one of {', '.join(TRANSACTION_TYPES)}")
        value = _checked_amount(amount)

        with unit_of_work(self.session_factory, session) as db:
            if db.get(models.Order, order_id) is None:
                raise OrderNotFound(order_id)
            if _for_order(db, order_id) is not None:
                raise TransactionAlreadyExists(order_id)

            transaction = models.Transaction(type=type, amount=value, date=utcnow(), order_id=order_id)
            db.add(transaction)
            db.flush()

        logger.info("transaction created", transaction_id=transaction.id, order_id=order_id, amount=str(value))
        return transaction

    def update_transaction_for_order(self, order_id: str, new_amount, session: Optional[Session] = None) -> models.Transaction:
        value = _checked_amount(new_amount)
        with unit_of_work(self.session_factory, session) as db:
            transaction = _for_order(db, order_id)
            if transaction is None:
                raise TransactionNotFound(f"Transaction not found for order {order_id}")
            transaction.amount = value
            transaction.date = utcnow()

        logger.info("transaction updated", transaction_id=transaction.id, order_id=order_id, amount=str(value))
        return transaction

    def delete_transaction_for_order(self, order_id: str, session: Optional[Session] = None) -> dict:
        with unit_of_work(self.session_factory, session) as db:
            result = db.execute(delete(models.Transaction).where(models.Transaction.order_id == order_id))
            if result.rowcount == 0:
                raise TransactionNotFound(f"Transaction not found for order {order_id}")

        logger.info("transaction deleted", order_id=order_id)
        return {"success": True, "order_id": order_id}

    def find_transaction(self, transaction_id: Optional[str] = None, order_id: Optional[str] = None) -> Optional[models.Transaction]:
        if transaction_id is None and order_id is None:
            return None
        with unit_of_work(self.session_factory) as db:
            if transaction_id is not None:
                transaction = db.get(models.Transaction, transaction_id)
                if transaction is not None:
                    return transaction
            if order_id is not None:
                return _for_order(db, order_id)
            return None

    def delete_transaction(self, transaction_id: str) -> models.Transaction:
        with unit_of_work(self.session_factory) as db:
            transaction = db.get(models.Transaction, transaction_id)
            if transaction is None:
                raise TransactionNotFound(f"Transaction not found: {transaction_id}")
            db.delete(transaction)

        logger.info("transaction deleted", transaction_id=transaction_id, order_id=transaction.order_id)
        return transaction

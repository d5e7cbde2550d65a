"""Keeps an order and its transaction paired across create, update and delete.

By default each step runs in the service's own transaction, so a failure in
the transaction step leaves the order change in place. With ``atomic=True``
both steps share one session and commit or roll back together.
"""
from contextlib import contextmanager
from typing import Optional

from . import schemas
from .db import SessionFactory, SessionLocal, unit_of_work
from .orders import OrderService
from .transactions import TransactionService


class OrderTransactionController:
    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        order_service: Optional[OrderService] = None,
        transaction_service: Optional[TransactionService] = None,
    ):
        self.session_factory = session_factory
        self.order_service = order_service or OrderService(session_factory)
        self.transaction_service = transaction_service or TransactionService(session_factory)

    @contextmanager
    def _scope(self, atomic: bool):
        if not atomic:
            yield None
            return
        with unit_of_work(self.session_factory) as db:
            yield db

    def create_order_with_transaction(self, data: schemas.OrderCreate, atomic: bool = False) -> schemas.OrderWithTransaction:
        with self._scope(atomic) as session:
            created = self.order_service.create_order(data, session=session)
            transaction = self.transaction_service.create_transaction_for_order(
                created.transaction_data.order_id,
                created.transaction_data.amount,
                session=session,
            )
            return schemas.OrderWithTransaction(
                order=schemas.OrderRead.model_validate(created.order),
                transaction=schemas.TransactionRead.model_validate(transaction),
            )

    def update_order_with_transaction(self, order_id: str, updates: schemas.OrderUpdate, atomic: bool = False) -> schemas.OrderWithTransaction:
        with self._scope(atomic) as session:
            updated = self.order_service.update_order(order_id, updates, session=session)
            transaction = None
            if updated.requires_transaction_update:
                transaction = self.transaction_service.update_transaction_for_order(
                    updated.order.id,
                    updated.new_amount if updated.new_amount is not None else 0,
                    session=session,
                )
            return schemas.OrderWithTransaction(
                order=schemas.OrderRead.model_validate(updated.order),
                transaction=schemas.TransactionRead.model_validate(transaction) if transaction is not None else None,
            )

    def delete_order_with_transaction(self, order_id: str, atomic: bool = False) -> schemas.OrderDeletion:
        with self._scope(atomic) as session:
            deleted = self.order_service.delete_order(order_id, session=session)
            transaction_result = None
            if deleted.requires_transaction_deletion:
                transaction_result = self.transaction_service.delete_transaction_for_order(deleted.deleted_order.id, session=session)
            return schemas.OrderDeletion(
                deleted_order=schemas.OrderRead.model_validate(deleted.deleted_order),
                transaction_result=schemas.TransactionResult(**transaction_result) if transaction_result else None,
            )

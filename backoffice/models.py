from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime
from sqlalchemy.orm import relationship
from .db import Base
from .utils import new_id, utcnow


class User(Base):
    """Back-office account; the subject of issued tokens."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    phone = Column(String(16), nullable=False, unique=True, index=True)
    # role column for simple RBAC: 'user' or 'admin'
    role = Column(String, nullable=False, default='user', index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(32), primary_key=True, default=new_id)
    # Customers created implicitly from an order only carry a phone
    name = Column(String, nullable=True, index=True)
    phone = Column(String(16), nullable=False, unique=True, index=True)
    role = Column(String, nullable=False, default='customer')
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    saved_orders = relationship("Order", back_populates="customer", order_by="Order.created_at")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    category = Column(String, nullable=True)
    customer_id = Column(String(32), ForeignKey("customers.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    customer = relationship("Customer", back_populates="saved_orders")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True, default=new_id)
    type = Column(String, nullable=False, default='income')
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(DateTime, nullable=False, default=utcnow)
    # One transaction per order is checked by TransactionService, not constrained here;
    # no FK so an order can be deleted ahead of its transaction.
    order_id = Column(String(32), nullable=False, index=True)


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    industry = Column(String, nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String(16), nullable=False, unique=True)
    email = Column(String, nullable=True, unique=True)
    created_by = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(32), primary_key=True, default=new_id)
    invoice_number = Column(String, nullable=False, unique=True)
    due_date = Column(DateTime, nullable=False, default=utcnow)
    customer_id = Column(String(32), ForeignKey("customers.id"), nullable=False, index=True)
    transaction_id = Column(String(32), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class JwtSecret(Base):
    __tablename__ = "jwt_secrets"

    id = Column(Integer, primary_key=True)
    key = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

import random
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import hash_password, verify_password
from .errors import (
    AuthError,
    BusinessNotFound,
    CustomerNotFound,
    DatastoreError,
    InvoiceNotFound,
    TransactionNotFound,
    UserNotFound,
    ValidationError,
)
from .utils import utcnow

logger = structlog.get_logger(__name__)


def _commit(db: Session, what: str):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DatastoreError(f"integrity error: {what}") from e


def generate_invoice_number() -> str:
    return f"INV-{random.randint(0, 10**9 - 1):09d}"


# -------------------- Customers --------------------

def create_customer(db: Session, customer: schemas.CustomerCreate) -> models.Customer:
    db_customer = models.Customer(name=customer.name, phone=customer.phone, role=customer.role)
    db.add(db_customer)
    _commit(db, "phone already registered")
    db.refresh(db_customer)
    return db_customer


def get_customer(db: Session, customer_id: str) -> models.Customer:
    customer = db.get(models.Customer, customer_id)
    if not customer:
        raise CustomerNotFound()
    return customer


def find_customer(db: Session, value: str) -> models.Customer:
    """Digits (optionally with a leading +) search by phone, anything else by name."""
    if value.lstrip("+").isdigit():
        stmt = select(models.Customer).where(models.Customer.phone == value)
    else:
        stmt = select(models.Customer).where(func.lower(models.Customer.name).contains(value.lower()))
    customer = db.scalars(stmt).first()
    if not customer:
        raise CustomerNotFound()
    return customer


def update_customer_phone(db: Session, customer_id: str, phone: str) -> models.Customer:
    customer = get_customer(db, customer_id)
    customer.phone = phone
    _commit(db, "phone already registered")
    db.refresh(customer)
    return customer


def delete_customer(db: Session, customer_id: str) -> models.Customer:
    customer = get_customer(db, customer_id)
    db.delete(customer)
    _commit(db, "customer still has orders")
    return customer


# -------------------- Businesses --------------------

def _name_taken(db: Session, name: str, created_by: str, exclude_id: Optional[str] = None) -> bool:
    stmt = select(models.Business.id).where(
        func.lower(models.Business.name) == name.lower(),
        models.Business.created_by == created_by,
    )
    if exclude_id is not None:
        stmt = stmt.where(models.Business.id != exclude_id)
    return db.scalars(stmt).first() is not None


def create_business(db: Session, business: schemas.BusinessCreate, created_by: str) -> models.Business:
    name = business.name.strip()
    if _name_taken(db, name, created_by):
        raise ValidationError("A business with this name already exists for your account")
    db_business = models.Business(
        name=name,
        industry=business.industry.strip(),
        address=business.address.strip(),
        phone=business.phone,
        email=business.email.lower() if business.email else None,
        created_by=created_by,
    )
    db.add(db_business)
    _commit(db, "phone or email already registered")
    db.refresh(db_business)
    logger.info("business created", business_id=db_business.id, created_by=created_by)
    return db_business


def get_business(db: Session, business_id: str) -> models.Business:
    business = db.get(models.Business, business_id)
    if not business:
        raise BusinessNotFound()
    return business


def update_business(db: Session, business_id: str, updates: schemas.BusinessUpdate) -> models.Business:
    business = get_business(db, business_id)
    changes = updates.model_dump(exclude_unset=True)
    if changes.get("name") and _name_taken(db, changes["name"], business.created_by, exclude_id=business.id):
        raise ValidationError("A business with this name already exists for your account")
    if changes.get("email"):
        changes["email"] = changes["email"].lower()
    for field, value in changes.items():
        setattr(business, field, value)
    business.updated_at = utcnow()
    _commit(db, "phone or email already registered")
    db.refresh(business)
    return business


def delete_business(db: Session, business_id: str) -> models.Business:
    business = get_business(db, business_id)
    db.delete(business)
    db.commit()
    logger.info("business deleted", business_id=business_id)
    return business


def login_business_by_phone(db: Session, phone: str) -> models.Business:
    business = db.scalars(select(models.Business).where(models.Business.phone == phone)).first()
    if not business:
        raise BusinessNotFound("Account not found with this phone number")
    return business


# -------------------- Invoices --------------------

def create_invoice(db: Session, invoice: schemas.InvoiceCreate) -> models.Invoice:
    get_customer(db, invoice.customer_id)
    if db.get(models.Transaction, invoice.transaction_id) is None:
        raise TransactionNotFound(f"Transaction not found: {invoice.transaction_id}")
    db_invoice = models.Invoice(
        invoice_number=invoice.invoice_number or generate_invoice_number(),
        customer_id=invoice.customer_id,
        transaction_id=invoice.transaction_id,
        due_date=invoice.due_date or utcnow(),
    )
    db.add(db_invoice)
    _commit(db, "invoice number already used")
    db.refresh(db_invoice)
    return db_invoice


def find_invoices_for_customer(db: Session, phone: Optional[str] = None, name: Optional[str] = None) -> List[models.Invoice]:
    stmt = select(models.Customer)
    if phone:
        stmt = stmt.where(models.Customer.phone == phone)
    elif name:
        stmt = stmt.where(models.Customer.name == name)
    else:
        return []
    customer = db.scalars(stmt).first()
    if not customer:
        return []
    return list(db.scalars(select(models.Invoice).where(models.Invoice.customer_id == customer.id).order_by(models.Invoice.created_at)))


def delete_invoice(db: Session, invoice_id: str) -> models.Invoice:
    invoice = db.get(models.Invoice, invoice_id)
    if not invoice:
        raise InvoiceNotFound()
    if db.get(models.Transaction, invoice.transaction_id) is not None:
        raise ValidationError("Cannot delete invoice: corresponding transaction still exists")
    db.delete(invoice)
    db.commit()
    return invoice


# -------------------- Users --------------------

def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    db_user = models.User(name=user.name, phone=user.phone, role=user.role, password_hash=hash_password(user.password))
    db.add(db_user)
    _commit(db, "phone already registered")
    db.refresh(db_user)
    return db_user


def authenticate_user(db: Session, phone: str, password: str) -> models.User:
    user = db.scalars(select(models.User).where(models.User.phone == phone)).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("invalid credentials")
    return user


def get_user(db: Session, user_id: str) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise UserNotFound()
    return user


def find_user(db: Session, value: str) -> models.User:
    if value.lstrip("+").isdigit():
        stmt = select(models.User).where(models.User.phone == value)
    else:
        stmt = select(models.User).where(func.lower(models.User.name).contains(value.lower()))
    user = db.scalars(stmt).first()
    if not user:
        raise UserNotFound()
    return user


def update_user_phone(db: Session, user_id: str, phone: str) -> models.User:
    user = get_user(db, user_id)
    user.phone = phone
    _commit(db, "phone already registered")
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str) -> models.User:
    user = get_user(db, user_id)
    if db.scalars(select(models.Business).where(models.Business.created_by == user_id)).first() is not None:
        raise ValidationError("Cannot delete user: user still owns businesses")
    db.delete(user)
    db.commit()
    logger.info("user deleted", user_id=user_id)
    return user

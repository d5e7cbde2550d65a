from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

PHONE_PATTERN = r"^\+?\d{7,15}$"

TransactionType = Literal["income", "expense"]


# -------------------- Orders --------------------

class OrderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    category: Optional[str] = None
    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    customer_id: Optional[str] = None


class OrderUpdate(BaseModel):
    """Partial order update. Unknown keys are rejected rather than ignored."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    customer_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    customer_id: Optional[str] = None

    @field_validator("name", "price", "quantity", "customer_phone", "customer_id")
    @classmethod
    def not_null(cls, v):
        # Only runs for keys the client actually sent
        if v is None:
            raise ValueError("field cannot be null")
        return v


# Order columns an update may touch; customer_phone is resolved to customer_id
ORDER_UPDATABLE_FIELDS = frozenset({"name", "description", "price", "quantity", "category", "customer_id"})


class OrderRead(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int
    category: Optional[str] = None
    customer_id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------- Transactions --------------------

class TransactionRead(BaseModel):
    id: str
    type: TransactionType
    amount: Decimal
    date: datetime
    order_id: str

    model_config = ConfigDict(from_attributes=True)


class TransactionResult(BaseModel):
    success: bool
    order_id: str


class OrderWithTransaction(BaseModel):
    order: OrderRead
    transaction: Optional[TransactionRead] = None


class OrderDeletion(BaseModel):
    deleted_order: OrderRead
    transaction_result: Optional[TransactionResult] = None


# -------------------- Customers --------------------

class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    role: Literal["customer", "vendor"] = "customer"


class CustomerPhoneUpdate(BaseModel):
    phone: str = Field(..., pattern=PHONE_PATTERN)


class CustomerRead(BaseModel):
    id: str
    name: Optional[str] = None
    phone: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class CustomerDetail(CustomerRead):
    saved_orders: list[OrderRead] = []


# -------------------- Businesses --------------------

class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1)
    industry: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=r"^\d{10,15}$")
    email: Optional[str] = Field(default=None, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class BusinessUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    industry: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = Field(default=None, pattern=r"^\d{10,15}$")
    email: Optional[str] = Field(default=None, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class BusinessLogin(BaseModel):
    phone: str = Field(..., pattern=PHONE_PATTERN)


class BusinessRead(BaseModel):
    id: str
    name: str
    industry: Optional[str] = None
    address: Optional[str] = None
    phone: str
    email: Optional[str] = None
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------- Invoices --------------------

class InvoiceCreate(BaseModel):
    invoice_number: Optional[str] = Field(default=None, min_length=1)
    customer_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    due_date: Optional[datetime] = None


class InvoiceRead(BaseModel):
    id: str
    invoice_number: str
    due_date: datetime
    customer_id: str
    transaction_id: str

    model_config = ConfigDict(from_attributes=True)


# -------------------- Users / auth --------------------

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    role: Literal["user", "admin"] = "user"
    password: str = Field(..., min_length=6)


class UserRead(BaseModel):
    id: str
    name: str
    phone: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class UserPhoneUpdate(BaseModel):
    phone: str = Field(..., pattern=PHONE_PATTERN)


class LoginRequest(BaseModel):
    phone: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

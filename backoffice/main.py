import os
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy.orm import Session

from . import config, crud, models, schemas
from .auth import create_access_token, decode_access_token
from .controller import OrderTransactionController
from .db import Base, SessionLocal, engine
from .errors import AuthError, BackofficeError, NotFoundError
from .keys import ensure_key, rotate_key
from .orders import OrderService
from .transactions import TransactionService
from .utils import configure_logging, sanitize_input

configure_logging(config.get_settings().log_level)

# Create tables if not existing
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Commerce Back-Office")


# Dependencies: one session factory per app, overridden in tests

def get_session_factory():
    return SessionLocal


def get_db(session_factory=Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_controller(session_factory=Depends(get_session_factory)) -> OrderTransactionController:
    return OrderTransactionController(session_factory)


def get_order_service(session_factory=Depends(get_session_factory)) -> OrderService:
    return OrderService(session_factory)


def get_transaction_service(session_factory=Depends(get_session_factory)) -> TransactionService:
    return TransactionService(session_factory)


def current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = auth.split(None, 1)[1]
    try:
        payload = decode_access_token(db, token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = db.get(models.User, payload.get("sub"))
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def require_role(*roles: str):
    def checker(user: models.User = Depends(current_user)) -> models.User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return checker


def client_error(e: BackofficeError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


def lookup_error(e: BackofficeError) -> HTTPException:
    return HTTPException(status_code=404 if isinstance(e, NotFoundError) else 400, detail=str(e))


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Orders with transactions --------------------

@app.post("/orders-with-transaction", response_model=schemas.OrderWithTransaction, status_code=201)
def create_order_with_transaction(
    order: schemas.OrderCreate,
    atomic: bool = False,
    controller: OrderTransactionController = Depends(get_controller),
):
    try:
        return controller.create_order_with_transaction(order, atomic=atomic)
    except BackofficeError as e:
        raise client_error(e)


@app.put("/orders-with-transaction/{order_id}", response_model=schemas.OrderWithTransaction)
def update_order_with_transaction(
    order_id: str,
    updates: schemas.OrderUpdate,
    atomic: bool = False,
    controller: OrderTransactionController = Depends(get_controller),
):
    try:
        return controller.update_order_with_transaction(order_id, updates, atomic=atomic)
    except BackofficeError as e:
        raise client_error(e)


@app.delete("/orders-with-transaction/{order_id}", response_model=schemas.OrderDeletion)
def delete_order_with_transaction(
    order_id: str,
    atomic: bool = False,
    controller: OrderTransactionController = Depends(get_controller),
):
    try:
        return controller.delete_order_with_transaction(order_id, atomic=atomic)
    except BackofficeError as e:
        raise client_error(e)


@app.get("/orders/by-user", response_model=List[schemas.OrderRead])
def orders_by_user(
    phone: Optional[str] = None,
    customer_id: Optional[str] = None,
    service: OrderService = Depends(get_order_service),
):
    if not phone and not customer_id:
        raise HTTPException(status_code=400, detail="phone or customer_id required")
    return service.get_orders_by_user(phone=phone, customer_id=customer_id)


@app.get("/orders/by-date", response_model=List[schemas.OrderRead])
def orders_by_date(day: date = Query(..., alias="date"), service: OrderService = Depends(get_order_service)):
    return service.get_orders_by_date(day)


@app.get("/orders/{order_id}", response_model=schemas.OrderRead)
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    try:
        return service.get_order(order_id)
    except BackofficeError as e:
        raise lookup_error(e)


# -------------------- Transactions --------------------

@app.get("/transactions", response_model=schemas.TransactionRead)
def find_transaction_for_order(order_id: str, service: TransactionService = Depends(get_transaction_service)):
    transaction = service.find_transaction(order_id=order_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="transaction not found")
    return transaction


@app.get("/transactions/{transaction_id}", response_model=schemas.TransactionRead)
def get_transaction(transaction_id: str, service: TransactionService = Depends(get_transaction_service)):
    transaction = service.find_transaction(transaction_id=transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="transaction not found")
    return transaction


@app.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: str, service: TransactionService = Depends(get_transaction_service)):
    try:
        service.delete_transaction(transaction_id)
    except BackofficeError as e:
        raise lookup_error(e)
    return {"deleted": transaction_id}


# -------------------- Customers --------------------

@app.post("/customers", response_model=schemas.CustomerRead, status_code=201)
def create_customer(customer: schemas.CustomerCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_customer(db, customer)
    except BackofficeError as e:
        raise client_error(e)


@app.get("/customers/find", response_model=schemas.CustomerRead)
def find_customer(q: str = Query(..., min_length=1, max_length=100), db: Session = Depends(get_db)):
    term = sanitize_input(q)
    if not term:
        raise HTTPException(status_code=400, detail="invalid search term")
    try:
        return crud.find_customer(db, term)
    except BackofficeError as e:
        raise lookup_error(e)


@app.get("/customers/{customer_id}", response_model=schemas.CustomerDetail)
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    try:
        return crud.get_customer(db, customer_id)
    except BackofficeError as e:
        raise lookup_error(e)


@app.patch("/customers/{customer_id}/phone", response_model=schemas.CustomerRead)
def update_customer_phone(customer_id: str, payload: schemas.CustomerPhoneUpdate, db: Session = Depends(get_db)):
    try:
        return crud.update_customer_phone(db, customer_id, payload.phone)
    except BackofficeError as e:
        raise lookup_error(e)


@app.delete("/customers/{customer_id}")
def delete_customer(customer_id: str, db: Session = Depends(get_db)):
    try:
        crud.delete_customer(db, customer_id)
    except BackofficeError as e:
        raise lookup_error(e)
    return {"deleted": customer_id}


# -------------------- Businesses --------------------

def _owned_business(db: Session, business_id: str, user: models.User) -> models.Business:
    try:
        business = crud.get_business(db, business_id)
    except BackofficeError as e:
        raise lookup_error(e)
    if business.created_by != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="forbidden")
    return business


@app.post("/businesses", response_model=schemas.BusinessRead, status_code=201)
def create_business(business: schemas.BusinessCreate, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    try:
        return crud.create_business(db, business, created_by=user.id)
    except BackofficeError as e:
        raise client_error(e)


@app.post("/businesses/login", response_model=schemas.BusinessRead)
def login_business(payload: schemas.BusinessLogin, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    try:
        business = crud.login_business_by_phone(db, payload.phone)
    except BackofficeError as e:
        raise lookup_error(e)
    if business.created_by != user.id and user.role != "admin":
        raise HTTPException(status_code=404, detail="Account not found with this phone number")
    return business


@app.get("/businesses/{business_id}", response_model=schemas.BusinessRead)
def get_business(business_id: str, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    return _owned_business(db, business_id, user)


@app.put("/businesses/{business_id}", response_model=schemas.BusinessRead)
def update_business(business_id: str, updates: schemas.BusinessUpdate, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    _owned_business(db, business_id, user)
    try:
        return crud.update_business(db, business_id, updates)
    except BackofficeError as e:
        raise client_error(e)


@app.delete("/businesses/{business_id}")
def delete_business(business_id: str, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    _owned_business(db, business_id, user)
    crud.delete_business(db, business_id)
    return {"deleted": business_id}


# -------------------- Invoices --------------------

@app.post("/invoices", response_model=schemas.InvoiceRead, status_code=201)
def create_invoice(invoice: schemas.InvoiceCreate, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    try:
        return crud.create_invoice(db, invoice)
    except BackofficeError as e:
        raise client_error(e)


@app.get("/invoices", response_model=List[schemas.InvoiceRead])
def find_invoices(phone: Optional[str] = None, name: Optional[str] = None, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    return crud.find_invoices_for_customer(db, phone=phone, name=name)


@app.delete("/invoices/{invoice_id}")
def delete_invoice(invoice_id: str, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    try:
        crud.delete_invoice(db, invoice_id)
    except BackofficeError as e:
        raise lookup_error(e)
    return {"deleted": invoice_id}


# -------------------- Users / auth --------------------

@app.post("/users", response_model=schemas.UserRead, status_code=201)
def create_user(user: schemas.UserCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_user(db, user)
    except BackofficeError as e:
        raise client_error(e)


@app.get("/users/find", response_model=schemas.UserRead)
def find_user(q: str = Query(..., min_length=1, max_length=100), db: Session = Depends(get_db), user: models.User = Depends(require_role("admin"))):
    term = sanitize_input(q)
    if not term:
        raise HTTPException(status_code=400, detail="invalid search term")
    try:
        return crud.find_user(db, term)
    except BackofficeError as e:
        raise lookup_error(e)


@app.patch("/users/{user_id}/phone", response_model=schemas.UserRead)
def update_user_phone(user_id: str, payload: schemas.UserPhoneUpdate, db: Session = Depends(get_db), user: models.User = Depends(current_user)):
    if user.id != user_id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    try:
        return crud.update_user_phone(db, user_id, payload.phone)
    except BackofficeError as e:
        raise lookup_error(e)


@app.delete("/users/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db), user: models.User = Depends(require_role("admin"))):
    try:
        crud.delete_user(db, user_id)
    except BackofficeError as e:
        raise lookup_error(e)
    return {"deleted": user_id}


@app.post("/auth/login", response_model=schemas.Token)
def auth_login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    try:
        user = crud.authenticate_user(db, payload.phone, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    ensure_key(db)
    return {"access_token": create_access_token(db, user.id, user.role), "token_type": "bearer"}


@app.post("/auth/rotate")
def auth_rotate(db: Session = Depends(get_db), user: models.User = Depends(require_role("admin"))):
    secret = rotate_key(db)
    return {"version": secret.version}


def run():
    import uvicorn
    uvicorn.run("backoffice.main:app", host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))

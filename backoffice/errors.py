"""Error taxonomy shared by services, the coordinating controller and the routes.

Every error is a ``ValueError`` so call sites can keep treating bad requests
uniformly; subclasses let the HTTP layer pick a status code.
"""


class BackofficeError(ValueError):
    pass


class NotFoundError(BackofficeError):
    pass


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class TransactionNotFound(NotFoundError):
    def __init__(self, message="Transaction not found"):
        super().__init__(message)


class CustomerNotFound(NotFoundError):
    def __init__(self, message="Customer not found"):
        super().__init__(message)


class BusinessNotFound(NotFoundError):
    def __init__(self, message="Business not found"):
        super().__init__(message)


class InvoiceNotFound(NotFoundError):
    def __init__(self, message="Invoice not found"):
        super().__init__(message)


class UserNotFound(NotFoundError):
    def __init__(self, message="User not found"):
        super().__init__(message)


class TransactionAlreadyExists(BackofficeError):
    def __init__(self, order_id):
        super().__init__(f"Transaction already exists for order {order_id}")
        self.order_id = order_id


class ValidationError(BackofficeError):
    pass


class DatastoreError(BackofficeError):
    pass


class AuthError(BackofficeError):
    pass

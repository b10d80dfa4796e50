"""Custom exceptions for the quotations backend."""
from quotations.utils.formatters import jsonable


class QuotationsError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None, error=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.error = error or self.__class__.__name__.replace('Error', '')

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error'] = self.error
        rv['statusCode'] = self.status_code
        rv['status'] = 'error'
        return rv


class BusinessLogicError(QuotationsError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(QuotationsError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload, error='NotFound')


class ProductNotFoundError(NotFoundError):
    """A product (or its price) vanished while re-pricing a cart."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(
            f'El producto con ID {product_id} no fue encontrado',
            payload={'productId': str(product_id)}
        )
        self.error = 'ProductNotFound'


class QuoteExpiredError(QuotationsError):
    """Raised when paying a quote past its validity window."""
    def __init__(self, cart_id, valid_until):
        self.cart_id = cart_id
        self.valid_until = valid_until
        super().__init__(
            'Esta cotización ha expirado. Por favor, solicite una nueva cotización.',
            410,
            payload={
                'cartId': cart_id,
                'validUntil': valid_until.isoformat() if valid_until else None,
            },
            error='QuoteExpired'
        )


class InvalidQuoteStatusError(QuotationsError):
    """Raised when the quote status does not allow the requested operation."""
    def __init__(self, cart_id, current_status, expected_status):
        self.cart_id = cart_id
        self.current_status = current_status
        self.expected_status = expected_status
        super().__init__(
            f"La cotización está en estado '{current_status}', se esperaba '{expected_status}'",
            400,
            payload={
                'cartId': cart_id,
                'currentStatus': current_status,
                'expectedStatus': expected_status,
            },
            error='InvalidQuoteStatus'
        )


class PriceChangedError(QuotationsError):
    """Raised when price drift needs explicit customer approval."""
    def __init__(self, validation, requires_customer_approval=True):
        self.validation = validation
        self.requires_customer_approval = requires_customer_approval
        super().__init__(
            'Los precios han cambiado desde la cotización original',
            409,
            payload={
                'validation': jsonable(validation),
                'requiresCustomerApproval': requires_customer_approval,
            },
            error='PriceChanged'
        )


class InvalidTransitionError(BusinessLogicError):
    """Raised when a payment status transition is not allowed."""
    def __init__(self, current_status, new_status):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f'Cannot transition from {current_status} to {new_status}',
            payload={'currentStatus': current_status, 'newStatus': new_status}
        )
        self.error = 'InvalidTransition'

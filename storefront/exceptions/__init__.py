"""Custom exceptions and cart advisories for the storefront."""
import enum


class CartError(Exception):
    """Base exception for all storefront errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(CartError):
    """Exception raised for business rule violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(CartError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class VariantIncompleteError(BusinessLogicError):
    """Raised when a product with variant axes is added without a full selection."""
    def __init__(self, product_id, missing_axes):
        self.product_id = product_id
        self.missing_axes = tuple(missing_axes)
        super().__init__(
            "Please select all product options",
            status_code=422,
            payload={'product_id': str(product_id), 'missing_axes': list(self.missing_axes)}
        )


class InvalidQuantityInputError(BusinessLogicError, ValueError):
    """Raised when a direct quantity input is not a whole non-negative number."""
    def __init__(self, raw_value):
        self.raw_value = raw_value
        super().__init__("Invalid quantity", status_code=422)


class CouponNotApplicableError(BusinessLogicError):
    """Raised when a coupon's minimum amount is not reached."""
    def __init__(self, code, minimum_amount):
        self.code = code
        self.minimum_amount = minimum_amount
        super().__init__(
            f"Minimum {minimum_amount} required to apply coupon {code}",
            status_code=409
        )


class AdvisoryKind(enum.Enum):
    """Kinds of advisories a cart mutation can emit."""
    VARIANT_INCOMPLETE = "VARIANT_INCOMPLETE"
    STOCK_INSUFFICIENT = "STOCK_INSUFFICIENT"
    BELOW_MINIMUM_ORDER = "BELOW_MINIMUM_ORDER"
    INVALID_QUANTITY_INPUT = "INVALID_QUANTITY_INPUT"


class Advisory:
    """
    Human readable notice produced by a cart mutation.

    Advisories never abort the mutation: the cart is always left in a
    corrected, consistent state and the advisory tells the user why.
    """

    def __init__(self, kind, message, line_id=None):
        self.kind = kind
        self.message = message
        self.line_id = line_id

    @classmethod
    def stock_insufficient(cls, line_id=None):
        return cls(AdvisoryKind.STOCK_INSUFFICIENT, "Insufficient stock!", line_id)

    @classmethod
    def below_minimum_order(cls, minimum, line_id=None):
        return cls(AdvisoryKind.BELOW_MINIMUM_ORDER, f"Minimum order quantity is {minimum}", line_id)

    @classmethod
    def variant_incomplete(cls, line_id=None):
        return cls(AdvisoryKind.VARIANT_INCOMPLETE, "Please select all product options", line_id)

    @classmethod
    def invalid_quantity_input(cls, line_id=None):
        return cls(AdvisoryKind.INVALID_QUANTITY_INPUT, "Invalid quantity", line_id)

    def to_dict(self):
        return {'kind': self.kind.value, 'message': self.message, 'line_id': self.line_id}

    def __eq__(self, other):
        if not isinstance(other, Advisory):
            return NotImplemented
        return (self.kind, self.message, self.line_id) == (other.kind, other.message, other.line_id)

    def __hash__(self):
        return hash((self.kind, self.message, self.line_id))

    def __repr__(self):
        return f"<Advisory(kind={self.kind.value}, message='{self.message}', line_id={self.line_id!r})>"

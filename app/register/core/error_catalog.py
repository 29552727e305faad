from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    EMPTY_CART = ErrorDefinition("EMPTY_CART", "No items to save", status.HTTP_422_UNPROCESSABLE_ENTITY)
    MISSING_PAYMENT_METHOD = ErrorDefinition(
        "MISSING_PAYMENT_METHOD",
        "Select a payment method",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_QUANTITY = ErrorDefinition(
        "INVALID_QUANTITY",
        "Quantity must be a whole number",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_INDEX = ErrorDefinition(
        "INVALID_INDEX",
        "Line index is out of range",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_TAX_RATE = ErrorDefinition(
        "INVALID_TAX_RATE",
        "Tax rate must be between 0% and 100%",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_PRICE = ErrorDefinition(
        "INVALID_PRICE",
        "Price must be a valid number",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    SALE_ID_REQUIRED = ErrorDefinition(
        "SALE_ID_REQUIRED",
        "A sale id is required",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_DECISION_OPTION = ErrorDefinition(
        "INVALID_DECISION_OPTION",
        "Selected value is not one of the offered options",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    SALE_NOT_FOUND = ErrorDefinition("SALE_NOT_FOUND", "Sale not found", status.HTTP_404_NOT_FOUND)
    PRODUCT_NOT_FOUND = ErrorDefinition("PRODUCT_NOT_FOUND", "Product not found", status.HTTP_404_NOT_FOUND)
    DECISION_NOT_FOUND = ErrorDefinition(
        "DECISION_NOT_FOUND",
        "No pending decision with that id",
        status.HTTP_404_NOT_FOUND,
    )
    NO_DATA_TO_EXPORT = ErrorDefinition("NO_DATA_TO_EXPORT", "No data found to export", status.HTTP_404_NOT_FOUND)
    OPERATION_IN_PROGRESS = ErrorDefinition(
        "OPERATION_IN_PROGRESS",
        "Another register operation is already in progress",
        status.HTTP_409_CONFLICT,
    )
    DECISION_IN_FLIGHT = ErrorDefinition(
        "DECISION_IN_FLIGHT",
        "A decision is already awaiting an answer",
        status.HTTP_409_CONFLICT,
    )
    NO_OPERATION_PENDING = ErrorDefinition(
        "NO_OPERATION_PENDING",
        "No register operation is waiting for a decision",
        status.HTTP_409_CONFLICT,
    )
    STORE_ERROR = ErrorDefinition("STORE_ERROR", "Store operation failed", status.HTTP_500_INTERNAL_SERVER_ERROR)
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class RegisterValidationError(AppError):
    """Operator input was rejected; nothing was changed."""


class NotFoundError(AppError):
    pass


class ConflictError(AppError):
    """The register is busy with another operation or decision."""


class StoreError(AppError):
    """Persistence failed; the write must be treated as not applied."""

    def __init__(self, cause: Exception, details: object | None = None):
        self.cause = cause
        super().__init__(ErrorCatalog.STORE_ERROR, details or {"type": cause.__class__.__name__})

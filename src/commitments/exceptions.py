"""Error taxonomy for the commitment workflow.

Every error carries a stable ``code`` for API clients and a human-readable
message.  Validation errors also subclass :class:`ValueError` so callers
that treat service-level ``ValueError`` as bad input keep working.
"""


class CommitmentError(Exception):
    code = "COMMITMENT_ERROR"
    default_message = "The commitment operation failed."
    retryable = False

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        payload = {"code": self.code, "detail": self.message}
        if self.context:
            payload["context"] = {key: str(value) for key, value in self.context.items()}
        return payload


class ValidationError(CommitmentError, ValueError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request."


class NotFound(ValidationError):
    code = "NOT_FOUND"

    def __init__(self, entity, entity_id=None):
        message = f"{entity} not found."
        if entity_id is not None:
            message = f"{entity} '{entity_id}' not found."
        super().__init__(message, entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InvalidStatus(ValidationError):
    code = "INVALID_STATUS"
    default_message = "This status transition is not allowed."


class BelowMinimumQuantity(ValidationError):
    code = "BELOW_MINIMUM_QUANTITY"

    def __init__(self, quantity, minimum):
        super().__init__(
            f"Total quantity {quantity} is below the deal minimum of {minimum}.",
            quantity=quantity,
            minimum=minimum,
        )
        self.quantity = quantity
        self.minimum = minimum


class UnknownSize(ValidationError):
    code = "UNKNOWN_SIZE"

    def __init__(self, sizes, message=None):
        if isinstance(sizes, str):
            sizes = [sizes]
        self.sizes = sorted(sizes)
        super().__init__(
            message or "Unknown size(s) for this deal: " + ", ".join(self.sizes) + ".",
            sizes=", ".join(self.sizes),
        )


class PriceMismatch(ValidationError):
    code = "PRICE_MISMATCH"

    def __init__(self, supplied, expected):
        super().__init__(
            f"Total price {supplied} does not match the expected {expected}.",
            supplied=supplied,
            expected=expected,
        )
        self.supplied = supplied
        self.expected = expected


class InvalidOverride(ValidationError):
    code = "INVALID_OVERRIDE"
    default_message = "The distributor override is inconsistent."


class Conflict(CommitmentError):
    """Another request modified the commitment first. Safe to retry."""

    code = "CONFLICT"
    default_message = "The commitment was modified concurrently; reload and retry."
    retryable = True


class StorageError(CommitmentError):
    code = "STORAGE_ERROR"
    default_message = "The operation could not be persisted."


class DealValidationError(ValidationError):
    code = "INVALID_DEAL"
    default_message = "The deal definition is invalid."

"""Exception taxonomy for the arena engine.

All signing, precision, transport and batch exceptions live here
to avoid circular imports between modules.

Propagation rules:
- ConfigurationError and ValidationError are never downgraded to warnings.
- TransportError propagates to the immediate caller.
- PartialFailure is collected into a BatchResult, never raised by a batch.
- BatchFailure is raised only when every entity of a non-empty batch failed.
"""


class ArenaError(Exception):
    """Base exception for all arena errors."""


class ConfigurationError(ArenaError):
    """Raised when credentials or settings are missing or malformed.

    Fatal to the client instance being constructed.
    """


class SignatureError(ArenaError):
    """Raised when a signer cannot produce a signature for a request."""


class ValidationError(ArenaError):
    """Raised when an order fails precision rules and no adjustment is usable.

    The order is rejected before any network call.

    Attributes:
        symbol: The symbol the order was for.
        errors: Every validation failure reason, in check order.
    """

    def __init__(self, symbol: str, errors: list[str]) -> None:
        self.symbol = symbol
        self.errors = list(errors)
        super().__init__(f"Order validation failed for {symbol}: {', '.join(errors)}")


class TransportError(ArenaError):
    """Raised on network failure, timeout, or a non-2xx exchange response.

    Attributes:
        status: HTTP status, or None when the request never completed.
        code: Exchange error code from the response body, if any.
        path: Request path that failed.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: int | None = None,
        path: str | None = None,
    ) -> None:
        self.status = status
        self.code = code
        self.path = path
        super().__init__(message)


class ResponseSchemaError(TransportError):
    """Raised when an exchange payload does not match the expected record shape."""


class PartialFailure(ArenaError):
    """One entity (symbol, agent, position) failed inside a batch operation.

    Attributes:
        key: Identifier of the failed entity.
        cause: The underlying exception.
    """

    def __init__(self, key: str, cause: BaseException) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"{key}: {cause}")


class BatchFailure(ArenaError):
    """Every entity of a batch failed, so there is no aggregate to return.

    Attributes:
        operation: Name of the batch operation.
        failures: The per-entity failures, keyed by entity.
    """

    def __init__(self, operation: str, failures: dict[str, PartialFailure]) -> None:
        self.operation = operation
        self.failures = dict(failures)
        super().__init__(f"{operation}: all {len(failures)} entities failed")

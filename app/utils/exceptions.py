"""
Exception types.

Application errors carry an HTTP-style status code and a machine code so
the excluded web layer can map them without inspecting messages.
Pipeline errors describe external failures that the scheduler retries.
"""


class AppError(Exception):
    """Base application error."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class ValidationError(AppError):
    """Invalid input or business rule violation. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class LifetimeDowngradeError(ValidationError):
    """Attempt to replace a non-expiring membership with a finite tier."""

    code = "LIFETIME_DOWNGRADE"


class NotFoundError(AppError):
    """Requested entity does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: object | None = None) -> None:
        if identifier is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} with identifier {identifier} not found"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ConflictError(AppError):
    """Entity already exists."""

    status_code = 409
    code = "CONFLICT"


# Pipeline (external I/O) errors


class ChainConnectionError(Exception):
    """RPC endpoint unreachable or timed out."""
    pass


class LogFetchError(Exception):
    """Single eth_getLogs request failed."""

    def __init__(self, message: str, block_from: int, block_to: int) -> None:
        super().__init__(message)
        self.block_from = block_from
        self.block_to = block_to


class ScanWindowError(Exception):
    """
    Scan window aborted on a failing log query.

    The cursor has already been moved to ``last_scanned`` (the end of
    the last fully processed block chunk) when this is raised.
    """

    def __init__(
        self,
        message: str,
        block_from: int,
        block_to: int,
        address_count: int,
        last_scanned: int,
    ) -> None:
        super().__init__(message)
        self.block_from = block_from
        self.block_to = block_to
        self.address_count = address_count
        self.last_scanned = last_scanned

    def __str__(self) -> str:
        return (
            f"{self.args[0]} (blocks {self.block_from}-{self.block_to}, "
            f"{self.address_count} addresses, cursor at {self.last_scanned})"
        )


class ReserveServiceError(Exception):
    """Reserve service call failed (timeout, non-2xx or malformed body)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

"""Exception hierarchy for keysmith.

All exceptions inherit from :class:`KeysmithError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`keysmith.exit_codes`.
The top-level error handler in :func:`keysmith.app.main` catches
``KeysmithError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    KeysmithError (exit 1)
    +-- ConfigError               (exit 1)
    +-- InvalidUsageError         (exit 2)
    |   +-- ValidationError       (exit 2)
    |       +-- InvalidExpiryTimeError
    |       +-- EnumTranslationError
    +-- AuthError                 (exit 3)
    +-- NotFoundError             (exit 4)
    +-- ServerError               (exit 5)
    +-- RequestError              (exit 10)
    +-- ConnectionError_          (exit 6)
    +-- ConflictError             (exit 7)
    +-- OperationError            (exit 8)
        +-- OperationFailedError
        +-- OperationCancelledError
        +-- OperationTimeoutError (exit 9)
"""

from keysmith.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFLICT,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_OPERATION_FAILED,
    EXIT_OPERATION_TIMEOUT,
    EXIT_REQUEST_REJECTED,
    EXIT_SERVER_ERROR,
)


class KeysmithError(Exception):
    """Base exception for all keysmith errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`keysmith.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(KeysmithError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(KeysmithError):
    """Raised for invalid CLI arguments or malformed declarative input files."""

    exit_code = EXIT_INVALID_USAGE


class ValidationError(InvalidUsageError):
    """Raised when a resource model fails validation before any remote call."""


class InvalidExpiryTimeError(ValidationError):
    """Raised when ``expiry_time`` is not an RFC 3339 timestamp."""


class EnumTranslationError(ValidationError):
    """Raised when an owner type or state has no counterpart on the other side."""


class AuthError(KeysmithError):
    """Raised when the control plane rejects the caller's credentials (HTTP 401/403)."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(KeysmithError):
    """Raised when the control plane returns HTTP 404."""

    exit_code = EXIT_NOT_FOUND


class ServerError(KeysmithError):
    """Raised when the control plane returns an HTTP 5xx server error."""

    exit_code = EXIT_SERVER_ERROR


class RequestError(KeysmithError):
    """Raised for 4xx responses that have no more specific mapping."""

    exit_code = EXIT_REQUEST_REJECTED


class ConnectionError_(KeysmithError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ConflictError(KeysmithError):
    """Raised when a mutating call carried a stale resource version (HTTP 409/412)."""

    exit_code = EXIT_CONFLICT


class OperationError(KeysmithError):
    """Raised when an async operation cannot be awaited to success."""

    exit_code = EXIT_OPERATION_FAILED


class OperationFailedError(OperationError):
    """The async operation finished in the failed or rejected state."""


class OperationCancelledError(OperationError):
    """The async operation was cancelled, or the caller cancelled the wait."""


class OperationTimeoutError(OperationError):
    """The deadline elapsed before the async operation reached a terminal state."""

    exit_code = EXIT_OPERATION_TIMEOUT

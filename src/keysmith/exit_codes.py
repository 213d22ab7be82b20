"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~keysmith.exceptions.KeysmithError` subclass.
CI scripts can inspect the exit code to tell a stale-version conflict from
an operation that timed out without parsing stderr.

Example::

    $ keysmith apply -f keys.yaml
    $ echo $?
    9   # EXIT_OPERATION_TIMEOUT -- the async operation never finished
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""Invalid arguments or a declarative input that failed validation."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_NOT_FOUND = 4
"""The requested API key or operation was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The control plane returned an HTTP 5xx error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CONFLICT = 7
"""The resource version was stale; someone else modified the key."""

EXIT_OPERATION_FAILED = 8
"""An async operation finished in a failed, rejected, or cancelled state."""

EXIT_OPERATION_TIMEOUT = 9
"""The deadline elapsed before an async operation reached a terminal state."""

EXIT_REQUEST_REJECTED = 10
"""The control plane rejected the request (HTTP 4xx other than 401, 403, 404, 409, 412)."""

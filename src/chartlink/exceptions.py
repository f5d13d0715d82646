"""Exception hierarchy for chartlink.

All exceptions inherit from :class:`ChartlinkError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`chartlink.exit_codes`.
The top-level error handler in :func:`chartlink.app.main` catches
``ChartlinkError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ChartlinkError (exit 1)
    +-- ConfigError              (exit 1)
    |   +-- UnsupportedError     (exit 1)
    +-- AuthError                (exit 3)
    |   +-- ProtocolError        (exit 3)
    |   +-- CredentialRejectedError (exit 3)
    |   +-- NotLoggedInError     (exit 3)
    +-- HTTPError                (exit 5)
    +-- ConnectionError_         (exit 6)
    +-- CancelledError           (exit 130)
    +-- InvalidTileError         (exit 2)
    +-- TileDecodeError          (exit 7)
"""

from chartlink.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_INVALID_USAGE,
)


class ChartlinkError(Exception):
    """Base exception for all chartlink errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`chartlink.exit_codes`. The entry point catches
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


class ConfigError(ChartlinkError):
    """Raised for configuration problems (invalid config file, bad credential source, missing refresh token)."""

    exit_code = EXIT_GENERIC_FAILURE


class UnsupportedError(ConfigError):
    """Raised when an auth operation is requested but no client secret is configured."""


class AuthError(ChartlinkError):
    """Raised when authentication fails."""

    exit_code = EXIT_AUTH_FAILURE


class ProtocolError(AuthError):
    """Raised when the callback or a provider response violates the OAuth exchange.

    Covers a missing or mismatched ``state``, missing ``session_state`` or
    ``code`` fields, and token responses that do not decode.
    """


class CredentialRejectedError(AuthError):
    """Raised when the provider rejects the saved refresh token.

    The saved login has already been removed when this is raised; the user
    has to log in interactively again.
    """


class NotLoggedInError(AuthError):
    """Raised when an operation needs an access token but the session has none."""


class HTTPError(ChartlinkError):
    """Raised when the provider answers with a non-2xx status.

    Args:
        message: Human-readable error description.
        status_code: The HTTP status code of the response.
    """

    exit_code = EXIT_HTTP_ERROR

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ConnectionError_(ChartlinkError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class CancelledError(ChartlinkError):
    """Raised when an operation observes that its cancel token was set."""

    exit_code = EXIT_CANCELLED


class InvalidTileError(ChartlinkError):
    """Raised for tile coordinates outside the source's valid domain."""

    exit_code = EXIT_INVALID_USAGE


class TileDecodeError(ChartlinkError):
    """Raised when downloaded tile bytes cannot be decoded into an image."""

    exit_code = EXIT_DECODE_ERROR

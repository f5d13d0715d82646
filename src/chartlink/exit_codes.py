"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~chartlink.exceptions.ChartlinkError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login from a
network outage without parsing stderr.

Example::

    $ chartlink auth relogin
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- saved login was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments (including bad tile coordinates)."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the saved login is no longer valid."""

EXIT_HTTP_ERROR = 5
"""The provider answered with a non-2xx status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_DECODE_ERROR = 7
"""A downloaded tile could not be decoded as an image."""

EXIT_CANCELLED = 130
"""The operation was cancelled (Ctrl-C or an explicit cancel request)."""

"""Cooperative cancellation for blocking network calls.

A :class:`CancelToken` is shared between the thread that runs a network
operation and the thread that may want to abort it. Nothing is interrupted
forcibly: the operation polls the token at its checkpoints (before sending,
after the response headers arrive, between body chunks) and raises
:class:`~chartlink.exceptions.CancelledError` when it finds it set. A call
blocked inside a socket read only notices at its next checkpoint, so callers
must tolerate a short delay after calling :meth:`CancelToken.cancel`.
"""

from __future__ import annotations

import threading

from chartlink.exceptions import CancelledError


class CancelToken:
    """A thread-safe boolean flag polled by in-flight operations.

    Example::

        token = CancelToken()
        threading.Timer(1.0, token.cancel).start()
        client.download(url, token)   # raises CancelledError after ~1 s
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Set the flag. Idempotent."""
        self._event.set()

    def reset(self) -> None:
        """Clear the flag so later operations may proceed."""
        self._event.clear()

    def raise_if_cancelled(self, what: str = "Operation") -> None:
        """Raise :class:`CancelledError` if the flag is set.

        Args:
            what: Short description of the operation, used in the message.
        """
        if self._event.is_set():
            raise CancelledError(f"{what} was cancelled")

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.is_cancelled})"

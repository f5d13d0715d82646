"""One-shot loopback HTTP server that receives the OAuth ``form_post`` callback.

The identity provider answers the authorization request by making the
user's browser POST an ``application/x-www-form-urlencoded`` form to
``http://127.0.0.1:<port>``. :class:`LoopbackAuthServer` binds an
OS-assigned port, serves on a background thread, parses the first POST
into a ``dict`` and hands it to the registered callback, then shuts down.

A POST whose body cannot be read is still dispatched, as an empty form, so
the callback always learns that the one-shot listener has been used up.

The callback runs on the server thread. Anything it raises is reported as
debug output and turned into an error page for the browser; delivering the
failure to the thread that started the login is the callback's job (see
:class:`~chartlink.auth.session.AuthSession`).
"""

from __future__ import annotations

import html
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

from chartlink.output import debug

ReplyCallback = Callable[[dict[str, str]], None]

_SUCCESS_BODY = "Login successful! You can close this window and return to the application."


class LoopbackAuthServer:
    """Short-lived HTTP listener on ``127.0.0.1`` for a single login callback.

    Args:
        on_reply: Callback invoked with the parsed form fields of the first
            POST. Can also be set later with :meth:`set_auth_callback`.
        host: Interface to bind. Only loopback makes sense here.
        poll_interval: Seconds between checks of the stop flag while idle.

    Example::

        server = LoopbackAuthServer(lambda fields: print(fields["code"]))
        port = server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        on_reply: Optional[ReplyCallback] = None,
        host: str = "127.0.0.1",
        poll_interval: float = 0.25,
    ) -> None:
        self._on_reply = on_reply
        self._host = host
        self._poll_interval = poll_interval
        self._httpd: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()
        self._port = 0

    @property
    def port(self) -> int:
        """The bound port, or ``0`` before :meth:`start`."""
        return self._port

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def set_auth_callback(self, on_reply: ReplyCallback) -> None:
        self._on_reply = on_reply

    def start(self) -> int:
        """Bind an ephemeral port, start the serving thread and return the port.

        A listener left over from an earlier attempt is stopped first.
        """
        self.stop()

        self._done = threading.Event()
        self._httpd = HTTPServer((self._host, 0), self._make_handler(self._done))
        self._httpd.timeout = self._poll_interval
        self._port = self._httpd.server_address[1]

        self._thread = threading.Thread(
            target=self._serve,
            args=(self._httpd, self._done),
            name="chartlink-auth-callback",
            daemon=True,
        )
        self._thread.start()
        debug(f"Loopback auth server listening on port {self._port}")
        return self._port

    def stop(self, timeout: float = 5.0) -> None:
        """Ask the serving thread to exit and wait for it. Idempotent.

        Safe to call from the callback itself: the server then shuts down
        as soon as the current request has been answered.
        """
        self._done.set()
        thread = self._thread
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _serve(self, httpd: HTTPServer, done: threading.Event) -> None:
        try:
            while not done.is_set():
                httpd.handle_request()
        finally:
            httpd.server_close()
            debug(f"Loopback auth server on port {httpd.server_address[1]} closed")

    def _dispatch(self, fields: dict[str, str]) -> None:
        if self._on_reply is None:
            raise RuntimeError("No auth callback registered")
        self._on_reply(fields)

    def _make_handler(self, done: threading.Event) -> type[BaseHTTPRequestHandler]:
        server = self

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_POST(self) -> None:
                if done.is_set():
                    self._respond(410, "This login link has already been used.")
                    return
                # One-shot: later requests are refused even if this one fails.
                done.set()

                try:
                    fields = self._read_form()
                except (ValueError, OSError) as exc:
                    debug(f"Unreadable login callback: {exc}")
                    fields = {}

                try:
                    server._dispatch(fields)
                except Exception as exc:
                    debug(f"Login callback failed: {exc}")
                    self._respond(400, f"Login failed: {exc}")
                    return
                self._respond(200, _SUCCESS_BODY)

            def do_GET(self) -> None:
                self._respond(405, "Waiting for the login form to be posted.")

            def _read_form(self) -> dict[str, str]:
                length = int(self.headers.get("Content-Length") or 0)
                if length < 0:
                    raise ValueError(f"negative Content-Length {length}")
                body = self.rfile.read(length).decode("utf-8", errors="replace")
                return dict(parse_qsl(body, keep_blank_values=True))

            def _respond(self, status: int, message: str) -> None:
                page = f"<html><body><h2>{html.escape(message)}</h2></body></html>"
                data = page.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def log_message(self, format: str, *args: Any) -> None:
                debug("callback server: " + format % args)

        return CallbackHandler

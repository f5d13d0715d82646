"""Tests for the one-shot loopback callback server, using real sockets."""

from __future__ import annotations

import socket
import threading
from http.client import HTTPConnection
from urllib.parse import urlencode

import pytest

from chartlink.auth.callback_server import LoopbackAuthServer
from chartlink.output import OutputFormat, OutputManager, set_output


def _post(port: int, fields: dict[str, str]) -> tuple[int, str]:
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request(
            "POST",
            "/",
            body=urlencode(fields),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        response = conn.getresponse()
        return response.status, response.read().decode()
    finally:
        conn.close()


def _send_raw(port: int, request: bytes) -> str:
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(request)
        return sock.recv(4096).decode("latin-1")


def _get(port: int) -> int:
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", "/")
        response = conn.getresponse()
        response.read()
        return response.status
    finally:
        conn.close()


@pytest.fixture()
def received() -> list[dict[str, str]]:
    return []


@pytest.fixture()
def server(received: list[dict[str, str]]):
    srv = LoopbackAuthServer(received.append, poll_interval=0.05)
    yield srv
    srv.stop()


class TestLoopbackAuthServer:
    def test_port_zero_before_start(self, server: LoopbackAuthServer) -> None:
        assert server.port == 0
        assert not server.is_running

    def test_start_binds_ephemeral_port(self, server: LoopbackAuthServer) -> None:
        port = server.start()
        assert port > 0
        assert server.port == port
        assert server.is_running

    def test_post_fields_delivered(
        self, server: LoopbackAuthServer, received: list[dict[str, str]]
    ) -> None:
        port = server.start()
        status, body = _post(port, {"code": "abc", "state": "xyz", "session_state": "s"})

        assert status == 200
        assert "Login successful" in body
        assert received == [{"code": "abc", "state": "xyz", "session_state": "s"}]

    def test_blank_values_kept(
        self, server: LoopbackAuthServer, received: list[dict[str, str]]
    ) -> None:
        port = server.start()
        _post(port, {"code": "abc", "session_state": ""})
        assert received[0]["session_state"] == ""

    def test_serves_only_once(
        self, server: LoopbackAuthServer, received: list[dict[str, str]]
    ) -> None:
        port = server.start()
        _post(port, {"code": "first"})
        server._thread.join(5)  # type: ignore[union-attr]

        assert not server.is_running
        with pytest.raises(OSError):
            _post(port, {"code": "second"})
        assert received == [{"code": "first"}]

    def test_get_is_rejected_and_keeps_waiting(
        self, server: LoopbackAuthServer, received: list[dict[str, str]]
    ) -> None:
        port = server.start()
        assert _get(port) == 405
        assert server.is_running

        status, _ = _post(port, {"code": "abc"})
        assert status == 200
        assert received == [{"code": "abc"}]

    @pytest.mark.parametrize("length", [b"abc", b"-5"])
    def test_unreadable_body_dispatched_as_empty_form(
        self, server: LoopbackAuthServer, received: list[dict[str, str]], length: bytes
    ) -> None:
        port = server.start()
        reply = _send_raw(
            port,
            b"POST / HTTP/1.1\r\nHost: 127.0.0.1\r\nContent-Length: " + length + b"\r\n\r\n",
        )
        server._thread.join(5)  # type: ignore[union-attr]

        assert reply.startswith("HTTP/1.0 200")
        assert received == [{}]
        assert not server.is_running

    def test_callback_error_becomes_error_page(self) -> None:
        def fail(fields: dict[str, str]) -> None:
            raise ValueError("Invalid state, the login link only works once!")

        srv = LoopbackAuthServer(fail, poll_interval=0.05)
        try:
            port = srv.start()
            status, body = _post(port, {"state": "forged"})
        finally:
            srv.stop()

        assert status == 400
        assert "only works once" in body

    def test_callback_output_is_escaped(self) -> None:
        def fail(fields: dict[str, str]) -> None:
            raise ValueError("<script>")

        srv = LoopbackAuthServer(fail, poll_interval=0.05)
        try:
            status, body = _post(srv.start(), {})
        finally:
            srv.stop()
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_no_callback_registered(self) -> None:
        srv = LoopbackAuthServer(poll_interval=0.05)
        try:
            status, _ = _post(srv.start(), {"code": "abc"})
        finally:
            srv.stop()
        assert status == 400

    def test_stop_is_idempotent(self, server: LoopbackAuthServer) -> None:
        server.start()
        server.stop()
        server.stop()
        assert not server.is_running

    def test_stop_before_start(self, server: LoopbackAuthServer) -> None:
        server.stop()

    def test_restart_gets_new_listener(
        self, server: LoopbackAuthServer, received: list[dict[str, str]]
    ) -> None:
        server.start()
        port = server.start()
        status, _ = _post(port, {"code": "again"})
        assert status == 200
        assert received == [{"code": "again"}]

    def test_stop_from_callback_thread(self) -> None:
        done = threading.Event()
        srv = LoopbackAuthServer(poll_interval=0.05)

        def on_reply(fields: dict[str, str]) -> None:
            srv.stop()
            done.set()

        srv.set_auth_callback(on_reply)
        status, _ = _post(srv.start(), {"code": "abc"})
        assert status == 200
        assert done.wait(5)

    def test_callback_failure_shown_in_verbose_output(self, capsys) -> None:
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True))

        def fail(fields: dict[str, str]) -> None:
            raise ValueError("No auth code")

        srv = LoopbackAuthServer(fail, poll_interval=0.05)
        try:
            _post(srv.start(), {"state": "s"})
        finally:
            srv.stop()

        assert "[debug] Login callback failed: No auth code" in capsys.readouterr().err

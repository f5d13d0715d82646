"""Blocking HTTPS client with cooperative cancellation.

This module provides :class:`HttpsClient`, the transport used by the auth
session (token exchange, signed-credential lookup) and by the chart tile
source (tile downloads). It wraps :class:`httpx.Client` and layers on:

- **Cancellation checkpoints** -- every call takes a
  :class:`~chartlink.cancel.CancelToken` that is checked before sending,
  once the response headers arrive, and between body chunks of a download.
- **Error mapping** -- non-2xx responses raise
  :class:`~chartlink.exceptions.HTTPError` carrying the status code, and
  transport failures raise :class:`~chartlink.exceptions.ConnectionError_`.
- **URL hiding** -- tile URLs embed a signed key, so debug output can be
  told to omit URLs entirely.

No retries are performed; retry policy belongs to the caller.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from chartlink.cancel import CancelToken
from chartlink.exceptions import ConnectionError_, HTTPError
from chartlink.output import debug


class HttpsClient:
    """Synchronous HTTP client for provider calls.

    Args:
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.
        hide_urls: Leave URLs out of debug output.
        transport: Optional httpx transport, used by tests to inject a
            :class:`httpx.MockTransport`.

    Example::

        with HttpsClient(timeout=10) as client:
            body = client.post_form(token_url, {"grant_type": "refresh_token"}, token)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify: bool = True,
        hide_urls: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.hide_urls = hide_urls
        self._client = httpx.Client(
            timeout=timeout,
            verify=verify,
            follow_redirects=True,
            transport=transport,
        )

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> HttpsClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def post_form(
        self,
        url: str,
        fields: dict[str, str],
        cancel: CancelToken,
    ) -> str:
        """POST *fields* as ``application/x-www-form-urlencoded`` and return the body text.

        Raises:
            CancelledError: If *cancel* is set before or after the exchange.
            HTTPError: On a non-2xx response.
            ConnectionError_: On network / timeout errors.
        """
        cancel.raise_if_cancelled("Request")
        debug(f"POST {self._display(url)}")
        try:
            response = self._client.post(
                url, data=fields, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Request failed: {exc}") from exc
        cancel.raise_if_cancelled("Request")
        self._raise_for_status(response)
        return response.text

    def get_json(
        self,
        url: str,
        cancel: CancelToken,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET *url* and decode the JSON body.

        Raises:
            CancelledError: If *cancel* is set before or after the exchange.
            HTTPError: On a non-2xx response or a body that is not JSON.
            ConnectionError_: On network / timeout errors.
        """
        cancel.raise_if_cancelled("Request")
        debug(f"GET {self._display(url)}")
        merged = {"Accept": "application/json"}
        merged.update(headers or {})
        try:
            response = self._client.get(url, headers=merged)
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Request failed: {exc}") from exc
        cancel.raise_if_cancelled("Request")
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError as exc:
            raise HTTPError(
                f"Expected JSON from {self._display(url)}", response.status_code
            ) from exc

    def download(
        self,
        url: str,
        cancel: CancelToken,
        cookies: Optional[dict[str, str]] = None,
    ) -> bytes:
        """Download *url* into memory, checking *cancel* between chunks.

        Cookies are sent as a single ``Cookie`` header. A download aborted by
        cancellation raises instead of returning the bytes read so far.

        Raises:
            CancelledError: If *cancel* is set at any checkpoint.
            HTTPError: On a non-2xx response.
            ConnectionError_: On network / timeout errors.
        """
        cancel.raise_if_cancelled("Download")
        debug(f"GET {self._display(url)}")

        headers: dict[str, str] = {}
        if cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())

        chunks: list[bytes] = []
        try:
            with self._client.stream("GET", url, headers=headers) as response:
                cancel.raise_if_cancelled("Download")
                if not response.is_success:
                    response.read()
                    self._raise_for_status(response)
                for chunk in response.iter_bytes():
                    cancel.raise_if_cancelled("Download")
                    chunks.append(chunk)
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Download failed: {exc}") from exc

        cancel.raise_if_cancelled("Download")
        return b"".join(chunks)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _display(self, url: str) -> str:
        return "<hidden>" if self.hide_urls else url

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise :class:`HTTPError` for any non-2xx status."""
        if response.is_success:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("error_description") or detail.get("error") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        prefix = f"HTTP {response.status_code}"
        raise HTTPError(f"{prefix}: {msg}" if msg else prefix, response.status_code)

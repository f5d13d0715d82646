"""Login session for the chart provider: PKCE login, refresh, logout.

:class:`AuthSession` owns everything about being logged in:

1. :meth:`~AuthSession.start_auth` starts the loopback callback server,
   creates fresh challenge material and returns the authorization URL for
   the user to open in a browser. It does not block.
2. When the browser posts the provider's answer, the server thread calls
   :meth:`~AuthSession.on_auth_reply`, which checks ``state``, exchanges the
   authorization code for tokens, saves the refresh token and completes the
   pending attempt.
3. :meth:`~AuthSession.relogin` logs in silently with the saved refresh
   token. If the provider rejects it, the saved login is deleted and
   :class:`~chartlink.exceptions.CredentialRejectedError` is raised.

Each attempt is represented by a single-fire :class:`concurrent.futures.Future`.
The attempt's outcome, success or failure, is delivered both to the
``on_complete`` callback and to :meth:`~AuthSession.wait_for_login`, which
re-raises failures on the caller's thread. Only one attempt may be in
flight at a time; a second ``start_auth``/``relogin`` raises instead of
racing the first.

States::

    LOGGED_OUT --start_auth--> AWAITING_CALLBACK --callback ok--> LOGGED_IN
    LOGGED_OUT --relogin-----> REFRESHING -------token ok-----> LOGGED_IN
    any failure or cancel_auth while in flight ---> LOGGED_OUT (or LOGGED_IN
    if tokens from an earlier login are still held)

The identity token is stored as received. Its signature is not verified
against the provider's published keys.
"""

from __future__ import annotations

import enum
import secrets
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from chartlink.auth.callback_server import LoopbackAuthServer
from chartlink.auth.pkce import AuthChallenge, build_authorize_url
from chartlink.auth.token_store import TokenStore
from chartlink.cancel import CancelToken
from chartlink.client import HttpsClient
from chartlink.config import resolve_cache_dir, resolve_client_secret
from chartlink.exceptions import (
    AuthError,
    CancelledError,
    ConfigError,
    CredentialRejectedError,
    HTTPError,
    NotLoggedInError,
    ProtocolError,
    UnsupportedError,
)
from chartlink.models import (
    ChartsConfig,
    GlobalConfig,
    ProviderConfig,
    SignedCredential,
    TokenSet,
)
from chartlink.output import debug

AuthCallback = Callable[[Optional[BaseException]], None]


class SessionState(str, enum.Enum):
    """Where the session is in the login state machine."""

    LOGGED_OUT = "logged_out"
    AWAITING_CALLBACK = "awaiting_callback"
    REFRESHING = "refreshing"
    LOGGED_IN = "logged_in"


_IN_FLIGHT = (SessionState.AWAITING_CALLBACK, SessionState.REFRESHING)


def parse_token_response(text: str) -> TokenSet:
    """Decode a token-endpoint response body into a :class:`TokenSet`.

    Raises:
        ProtocolError: If the body is not JSON or any of ``id_token``,
            ``access_token``, ``refresh_token`` is absent or not a string.
    """
    try:
        return TokenSet.model_validate_json(text)
    except ValidationError as exc:
        fields = sorted({str(e["loc"][0]) for e in exc.errors() if e["loc"]})
        if not fields:
            raise ProtocolError("Token response is not a JSON object") from None
        raise ProtocolError(
            f"Malformed token response: missing or invalid {', '.join(fields)}"
        ) from None


class AuthSession:
    """OAuth2 Authorization Code + PKCE session with a persisted refresh token.

    Args:
        provider: Identity server endpoints, client id and scopes.
        client_secret: The OAuth client secret. Empty means this installation
            cannot log in (:meth:`is_supported` is ``False``).
        charts: Chart API settings, used to look up the signed tile credential.
        client: HTTPS client; one is created when omitted.
        server: Loopback callback server; one is created when omitted.

    Example::

        session = AuthSession.from_config(resolve_config())
        if session.can_relogin():
            session.relogin()
        else:
            url = session.start_auth()
            webbrowser.open(url)
            session.wait_for_login(timeout=300)
    """

    def __init__(
        self,
        provider: ProviderConfig,
        client_secret: str = "",
        charts: Optional[ChartsConfig] = None,
        client: Optional[HttpsClient] = None,
        server: Optional[LoopbackAuthServer] = None,
    ) -> None:
        self._provider = provider
        self._client_secret = client_secret
        self._charts = charts or ChartsConfig()
        self._owns_client = client is None
        self._client = client or HttpsClient()
        self._server = server or LoopbackAuthServer()
        self._server.set_auth_callback(self.on_auth_reply)

        self._lock = threading.RLock()
        self._cancel = CancelToken()
        self._state = SessionState.LOGGED_OUT
        self._store: Optional[TokenStore] = None
        self._challenge: Optional[AuthChallenge] = None
        self._tokens: Optional[TokenSet] = None
        self._refresh_token: Optional[str] = None
        self._signed: Optional[SignedCredential] = None
        self._attempt: Optional[Future[TokenSet]] = None
        self._on_complete: Optional[AuthCallback] = None

    @classmethod
    def from_config(cls, config: GlobalConfig) -> AuthSession:
        """Build a session from the effective configuration, loading any saved login."""
        client = HttpsClient(
            timeout=config.request.timeout,
            verify=config.request.verify_ssl,
        )
        session = cls(
            config.provider,
            client_secret=resolve_client_secret(config),
            charts=config.charts,
            client=client,
        )
        session._owns_client = True
        session.configure_cache(resolve_cache_dir(config))
        return session

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> AuthSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Cancel any pending attempt and release the HTTP client.

        The loopback server is stopped before the session goes away, so its
        thread never calls back into a closed session.
        """
        self.cancel_auth()
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def tokens(self) -> Optional[TokenSet]:
        """Tokens from the last successful login, if any."""
        return self._tokens

    @property
    def charts(self) -> ChartsConfig:
        return self._charts

    @property
    def token_store(self) -> Optional[TokenStore]:
        return self._store

    def configure_cache(self, path: Path) -> None:
        """Set the directory for the saved login and load it if present.

        The directory is created when missing. A saved refresh token makes
        :meth:`can_relogin` return ``True``.
        """
        store = TokenStore(Path(path))
        refresh_token = store.load()
        with self._lock:
            self._store = store
            if refresh_token:
                self._refresh_token = refresh_token
        if refresh_token:
            debug(f"Loaded saved login from {store.path}")

    def is_supported(self) -> bool:
        """Return ``True`` when a client secret is configured."""
        return bool(self._client_secret)

    def can_relogin(self) -> bool:
        """Return ``True`` while a refresh token is held."""
        return bool(self._refresh_token)

    def is_logged_in(self) -> bool:
        """Return ``True`` while a non-empty access token is held."""
        tokens = self._tokens
        return tokens is not None and bool(tokens.access_token)

    # ------------------------------------------------------------------ #
    # Interactive login
    # ------------------------------------------------------------------ #

    def start_auth(self, on_complete: Optional[AuthCallback] = None) -> str:
        """Start an interactive login and return the authorization URL.

        The loopback server keeps listening until one callback has been
        processed or :meth:`cancel_auth` is called. Opening the URL is the
        caller's business.

        Args:
            on_complete: Called once with ``None`` on success or with the
                exception on failure. It runs on the server thread for a
                callback outcome and on the cancelling thread for a cancel.

        Raises:
            UnsupportedError: If no client secret is configured.
            AuthError: If another login attempt is still in flight.
        """
        self._require_supported()
        with self._lock:
            attempt = self._begin_attempt(SessionState.AWAITING_CALLBACK, on_complete)
            try:
                port = self._server.start()
            except OSError as exc:
                self._state = self._settled_state()
                error = AuthError(f"Cannot start the login callback server: {exc}")
                attempt.set_exception(error)
                raise error from exc
            self._challenge = AuthChallenge.new(port)
            url = build_authorize_url(self._provider, self._challenge)
        debug(f"Waiting for the login callback on port {port}")
        return url

    def on_auth_reply(self, fields: dict[str, str]) -> None:
        """Handle the form fields posted to the loopback server.

        Runs on the server thread, including the token exchange. The pending
        attempt is completed either way; failures are also re-raised so the
        server can show the browser an error page.

        Raises:
            ProtocolError: If no attempt is waiting, ``state`` is missing or
                does not match, or ``session_state``/``code`` is missing.
        """
        with self._lock:
            attempt = self._attempt
            cancel = self._cancel
            challenge = self._challenge
            waiting = self._state == SessionState.AWAITING_CALLBACK
        if not waiting or challenge is None or attempt is None:
            raise ProtocolError("No login attempt is waiting for a callback")

        try:
            if not fields:
                raise ProtocolError("Login callback carried no form data")
            state = fields.get("state")
            if state is None:
                raise ProtocolError("No state")
            if not secrets.compare_digest(state.encode(), challenge.state.encode()):
                raise ProtocolError("Invalid state, the login link only works once!")
            if "session_state" not in fields:
                raise ProtocolError("No session_state")
            code = fields.get("code")
            if code is None:
                raise ProtocolError("No auth code")

            request = {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": challenge.verifier,
                "client_id": self._provider.client_id,
                "client_secret": self._client_secret,
                "redirect_uri": challenge.redirect_uri,
            }
            reply = self._client.post_form(self._provider.token_url, request, cancel)
            tokens = self._accept_token_response(reply, attempt)
        except Exception as exc:
            self._finish_attempt(attempt, exc)
            raise
        self._finish_attempt(attempt, None, tokens)

    def wait_for_login(self, timeout: Optional[float] = None) -> TokenSet:
        """Block until the current (or last) attempt completes.

        Failures from the server thread are re-raised here.

        Raises:
            AuthError: If no attempt was started or *timeout* expires.
        """
        attempt = self._attempt
        if attempt is None:
            raise AuthError("No login attempt has been started")
        try:
            return attempt.result(timeout)
        except FutureTimeoutError:
            raise AuthError("Timed out waiting for the browser login") from None

    # ------------------------------------------------------------------ #
    # Silent login
    # ------------------------------------------------------------------ #

    def relogin(self, on_complete: Optional[AuthCallback] = None) -> TokenSet:
        """Log in with the saved refresh token.

        Runs on the caller's thread and returns the new tokens.

        Raises:
            UnsupportedError: If no client secret is configured.
            ConfigError: If no refresh token is held.
            AuthError: If another login attempt is still in flight.
            CredentialRejectedError: If the provider rejects the refresh
                token. The saved login has been deleted by then.
            ConnectionError_: On network failure (the saved login is kept).
        """
        self._require_supported()
        with self._lock:
            if not self._refresh_token:
                raise ConfigError("No refresh token")
            attempt = self._begin_attempt(SessionState.REFRESHING, on_complete)
            cancel = self._cancel
            refresh_token = self._refresh_token

        request = {
            "grant_type": "refresh_token",
            "client_id": self._provider.client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
        }
        try:
            try:
                reply = self._client.post_form(self._provider.token_url, request, cancel)
            except HTTPError as exc:
                with self._lock:
                    if self._is_current(attempt):
                        self._forget_saved_login()
                raise CredentialRejectedError("Login no longer valid, try again") from exc
            tokens = self._accept_token_response(reply, attempt)
        except Exception as exc:
            self._finish_attempt(attempt, exc)
            raise
        self._finish_attempt(attempt, None, tokens)
        return tokens

    # ------------------------------------------------------------------ #
    # Cancel / logout
    # ------------------------------------------------------------------ #

    def cancel_auth(self) -> None:
        """Abort the in-flight attempt, if any. Idempotent.

        Sets the attempt's cancel flag (in-flight HTTP calls abort at their
        next checkpoint), stops the loopback server and discards the challenge.
        Tokens from an earlier login are kept.
        """
        with self._lock:
            self._cancel.cancel()
            attempt = self._attempt if self._state in _IN_FLIGHT else None
        self._server.stop()
        if attempt is not None:
            self._finish_attempt(attempt, CancelledError("Login was cancelled"))

    def logout(self) -> None:
        """Cancel any attempt and forget every credential, on disk and in memory."""
        self.cancel_auth()
        self._forget_saved_login()
        with self._lock:
            self._state = SessionState.LOGGED_OUT
        debug("Logged out")

    # ------------------------------------------------------------------ #
    # Signed tile credential
    # ------------------------------------------------------------------ #

    def get_signed_credential(self, cancel: Optional[CancelToken] = None) -> SignedCredential:
        """Return the signed credential for tile downloads.

        The credential is fetched with the access token and reused until 30
        seconds before it expires.

        Raises:
            NotLoggedInError: If the session holds no access token.
            ProtocolError: If the response does not decode.
        """
        with self._lock:
            tokens = self._tokens
            signed = self._signed
        if tokens is None or not tokens.access_token:
            raise NotLoggedInError("Not logged in")
        if signed is not None and signed.is_fresh():
            return signed

        data = self._client.get_json(
            self._charts.signing_url,
            cancel or CancelToken(),
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        try:
            signed = SignedCredential.model_validate(data)
        except ValidationError:
            raise ProtocolError("Malformed signed credential response") from None

        with self._lock:
            if self._tokens is tokens:
                self._signed = signed
        return signed

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_supported(self) -> None:
        if not self.is_supported():
            raise UnsupportedError(
                "Login is not supported: no client secret configured "
                "(set CHARTLINK_CLIENT_SECRET or provider.client_secret_source)"
            )

    def _settled_state(self) -> SessionState:
        return SessionState.LOGGED_IN if self.is_logged_in() else SessionState.LOGGED_OUT

    def _begin_attempt(
        self, state: SessionState, on_complete: Optional[AuthCallback]
    ) -> Future[TokenSet]:
        """Open a new attempt. Caller holds the lock."""
        if self._state in _IN_FLIGHT:
            raise AuthError("A login attempt is already in progress")
        self._cancel = CancelToken()
        self._attempt = Future()
        self._on_complete = on_complete
        self._state = state
        return self._attempt

    def _finish_attempt(
        self,
        attempt: Future[TokenSet],
        error: Optional[BaseException],
        tokens: Optional[TokenSet] = None,
    ) -> None:
        """Complete *attempt* once and notify the caller."""
        with self._lock:
            if not self._is_current(attempt):
                return
            cancel = self._cancel
            on_complete = self._on_complete
            self._on_complete = None
            self._challenge = None
            self._state = self._settled_state()
            if error is None:
                attempt.set_result(tokens)  # type: ignore[arg-type]
            else:
                attempt.set_exception(error)

        # The attempt is satisfied: stop the listener and abort stragglers.
        cancel.cancel()
        self._server.stop()
        if on_complete is not None:
            on_complete(error)

    def _is_current(self, attempt: Future[TokenSet]) -> bool:
        """Caller holds the lock."""
        return attempt is self._attempt and not attempt.done()

    def _accept_token_response(self, reply: str, attempt: Future[TokenSet]) -> TokenSet:
        """Decode, persist and adopt a token response for *attempt*.

        The previous token set stays in place if decoding or saving fails.
        Tokens that arrive after *attempt* was cancelled or replaced are
        dropped without touching the saved login.

        Raises:
            CancelledError: If *attempt* is no longer the pending one.
        """
        tokens = parse_token_response(reply)
        with self._lock:
            if not self._is_current(attempt):
                debug("Discarding tokens from a cancelled login attempt")
                raise CancelledError("Login was cancelled")
            if self._store is not None:
                self._store.save(tokens.refresh_token)
            else:
                debug("No cache directory configured; refresh token not saved")
            self._tokens = tokens
            self._refresh_token = tokens.refresh_token
            self._signed = None
        return tokens

    def _forget_saved_login(self) -> None:
        if self._store is not None:
            self._store.clear()
        with self._lock:
            self._tokens = None
            self._refresh_token = None
            self._signed = None

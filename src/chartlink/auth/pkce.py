"""PKCE challenge material and the authorization URL.

Implements the client side of :rfc:`7636` (S256 only):

- :func:`base64url_encode` -- unpadded base64url, as PKCE and the provider
  expect it.
- :func:`random_token` -- base64url of cryptographically random bytes.
- :func:`code_challenge_s256` -- the challenge derived from a verifier.
- :class:`AuthChallenge` -- the verifier, ``state`` and ``nonce`` of one
  login attempt, bound to the loopback port that will receive the callback.
- :func:`build_authorize_url` -- the URL the user opens in a browser.

Nothing in this module logs verifiers, states or nonces.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass, field
from urllib.parse import quote, urlencode

from chartlink.models import ProviderConfig

VERIFIER_BYTES = 32
STATE_BYTES = 8
NONCE_BYTES = 8


def base64url_encode(data: bytes) -> str:
    """Encode *data* as base64url without ``=`` padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def random_token(num_bytes: int) -> str:
    """Return *num_bytes* of secure random data, base64url-encoded."""
    return base64url_encode(secrets.token_bytes(num_bytes))


def code_challenge_s256(verifier: str) -> str:
    """Compute the S256 code challenge: ``base64url(sha256(verifier))``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64url_encode(digest)


def redirect_uri_for(port: int) -> str:
    """Return the loopback redirect URI registered for *port*."""
    return f"http://127.0.0.1:{port}"


@dataclass(frozen=True)
class AuthChallenge:
    """Challenge material for a single login attempt.

    Created by :meth:`new` when the attempt starts and consumed by the one
    callback whose ``state`` matches. A 32-byte verifier encodes to 43
    characters, the minimum length :rfc:`7636` allows.

    Attributes:
        callback_port: Port the loopback server is listening on.
        verifier: PKCE code verifier, sent only to the token endpoint.
        state: Anti-forgery value echoed back by the provider.
        nonce: Replay protection for the identity token.
    """

    callback_port: int
    verifier: str = field(repr=False)
    state: str = field(repr=False)
    nonce: str = field(repr=False)

    @classmethod
    def new(cls, callback_port: int) -> AuthChallenge:
        return cls(
            callback_port=callback_port,
            verifier=random_token(VERIFIER_BYTES),
            state=random_token(STATE_BYTES),
            nonce=random_token(NONCE_BYTES),
        )

    @property
    def redirect_uri(self) -> str:
        return redirect_uri_for(self.callback_port)

    @property
    def code_challenge(self) -> str:
        return code_challenge_s256(self.verifier)


def build_authorize_url(provider: ProviderConfig, challenge: AuthChallenge) -> str:
    """Build the authorization-endpoint URL for *challenge*.

    The provider answers with ``response_mode=form_post``: the browser POSTs
    the result to the loopback redirect URI.
    """
    params = {
        "scope": " ".join(provider.scopes),
        "response_type": "code id_token",
        "client_id": provider.client_id,
        "redirect_uri": challenge.redirect_uri,
        "response_mode": "form_post",
        "state": challenge.state,
        "nonce": challenge.nonce,
        "code_challenge_method": "S256",
        "code_challenge": challenge.code_challenge,
    }
    return f"{provider.authorize_url}?{urlencode(params, quote_via=quote)}"

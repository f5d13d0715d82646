"""Chart-provider authentication.

Re-exports the public API for convenient access::

    from chartlink.auth import AuthSession, SessionState, TokenStore

See Also:
    :mod:`chartlink.auth.pkce` -- challenge material and the authorization URL.
    :mod:`chartlink.auth.callback_server` -- the one-shot loopback listener.
"""

from chartlink.auth.callback_server import LoopbackAuthServer
from chartlink.auth.pkce import AuthChallenge
from chartlink.auth.session import AuthSession, SessionState, parse_token_response
from chartlink.auth.token_store import TokenStore

__all__ = [
    "AuthChallenge",
    "AuthSession",
    "LoopbackAuthServer",
    "SessionState",
    "TokenStore",
    "parse_token_response",
]

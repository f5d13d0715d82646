"""chartlink -- authenticated access to enroute chart tiles.

This package logs a user in to the chart provider with the OAuth2
Authorization Code flow with PKCE, keeps the refresh token between runs so
later sessions can log in silently, and downloads slippy-map chart tiles
using the session's signed tile credential.

Typical workflow::

    chartlink auth login              # browser login, saves refresh token
    chartlink tiles fetch 540 327 --zoom 10 -o tile.png

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration handling.
    cancel: Cooperative cancellation token.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    auth: PKCE helpers, loopback callback server, token store, session.
    client: httpx-based HTTPS client.
    tiles: Web Mercator maths and the enroute chart tile source.
"""

__version__ = "0.1.0"

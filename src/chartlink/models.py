"""Canonical Pydantic models shared across all chartlink modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ProviderConfig`, :class:`ChartsConfig`, :class:`RequestConfig`,
    :class:`OutputConfig`, and :class:`GlobalConfig`.

**Provider response models** -- decoded from the identity server and the
chart API: :class:`TokenSet` and :class:`SignedCredential`.

**Tile geometry** -- lightweight value types: :class:`Point` and
:class:`TileAddress`.

All models use Pydantic v2. Response models use strict string fields so that
a missing or mistyped field fails the decode instead of producing an empty
credential.
"""

from __future__ import annotations

import time
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, StrictInt, StrictStr


# --- Config ---


class ProviderConfig(BaseModel):
    """Identity provider settings used by the PKCE login flow.

    The client secret is never stored in the config file itself;
    ``client_secret_source`` is a credential descriptor resolved at runtime
    by :func:`~chartlink.config.resolve_credential`.
    """

    identity_url: str = Field(
        default="https://identity.api.navigraph.com",
        description="Base URL of the identity server",
    )
    authorize_path: str = Field(default="/connect/authorize")
    token_path: str = Field(default="/connect/token")
    client_id: str = Field(default="chartlink", description="OAuth client_id")
    client_secret_source: Optional[str] = Field(
        default="env:CHARTLINK_CLIENT_SECRET",
        description="Credential source for the client secret: env:VAR, file:/path, prompt",
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "charts", "userinfo", "offline_access"]
    )

    @property
    def authorize_url(self) -> str:
        return self.identity_url.rstrip("/") + self.authorize_path

    @property
    def token_url(self) -> str:
        return self.identity_url.rstrip("/") + self.token_path


class ChartsConfig(BaseModel):
    """Enroute chart tile settings."""

    tile_host: str = Field(
        default="https://enroute.charts.api.navigraph.com",
        description="Host serving the signed chart tiles",
    )
    signing_path: str = Field(
        default="/key", description="Path that issues the signed tile credential"
    )
    day_mode: bool = Field(default=True, description="Day tiles (False = night tiles)")
    high_routes: bool = Field(
        default=False, description="High-altitude route charts (False = low)"
    )

    @property
    def signing_url(self) -> str:
        return self.tile_host.rstrip("/") + self.signing_path


class RequestConfig(BaseModel):
    """HTTP request settings."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class OutputConfig(BaseModel):
    """Output formatting preferences."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """Top-level configuration stored in ``<config_dir>/config.json``.

    Example::

        GlobalConfig(
            provider=ProviderConfig(client_id="my-client"),
            charts=ChartsConfig(day_mode=False),
        )
    """

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    charts: ChartsConfig = Field(default_factory=ChartsConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    cache_dir: Optional[str] = Field(
        default=None,
        description="Directory holding the saved login (defaults to the XDG cache dir)",
    )
    login_timeout: int = Field(
        default=300, description="Seconds to wait for the browser login callback"
    )


# --- Provider responses ---


class TokenSet(BaseModel):
    """Tokens returned by the identity server's token endpoint.

    A non-empty :attr:`access_token` means the session is authenticated.
    The identity token is kept as received; its signature is not verified.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id_token: StrictStr
    access_token: StrictStr
    refresh_token: StrictStr


class SignedCredential(BaseModel):
    """Time-limited credential authorising direct tile downloads.

    ``key`` becomes the first path segment of every tile URL and
    ``cookies`` are sent with each download.
    """

    model_config = ConfigDict(extra="ignore")

    key: StrictStr
    cookies: dict[str, str] = Field(default_factory=dict)
    expires_in: StrictInt = 3600

    _received_at: float = PrivateAttr(default_factory=time.monotonic)

    def is_fresh(self, margin: float = 30.0) -> bool:
        """Return ``True`` while the credential has more than *margin* seconds left."""
        return time.monotonic() < self._received_at + self.expires_in - margin


# --- Tile geometry ---


class Point(NamedTuple):
    """A 2-D point; tile-space ``(x, y)`` or world ``(lon, lat)`` depending on context."""

    x: float
    y: float


class TileAddress(NamedTuple):
    """Address of one tile in a paged slippy-map grid."""

    page: int
    x: int
    y: int
    zoom: int

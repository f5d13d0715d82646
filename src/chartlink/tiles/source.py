"""Enroute chart tile source.

:class:`EnrouteChartSource` turns tile coordinates into provider tile paths
and downloads them with the session's signed credential. It serves a single
page of Web Mercator tiles, 256x256 pixels, at zoom levels 3 to 11.

Tile paths look like ``/{h|l}{d|n}-1x/{zoom}/{x}/{flipped_y}.png``:
``h``/``l`` picks high- or low-altitude route charts, ``d``/``n`` picks day
or night colours, and the provider counts rows from the south, so
``flipped_y = 2**zoom - 1 - y``.

Coordinates outside the grid are rejected rather than wrapped. Horizontal
wrapping renders incorrectly on the higher zoom levels, so it stays off.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Optional

from PIL import Image, UnidentifiedImageError

from chartlink.cancel import CancelToken
from chartlink.client import HttpsClient
from chartlink.exceptions import InvalidTileError, TileDecodeError
from chartlink.models import Point
from chartlink.tiles import mercator

if TYPE_CHECKING:
    from chartlink.auth.session import AuthSession

MIN_ZOOM = 3
MAX_ZOOM = 11
INITIAL_ZOOM = 10
TILE_SIZE = 256
COPYRIGHT = "(c) Navigraph | Jeppesen - Not for Navigational Use"


class EnrouteChartSource:
    """Slippy-map source for the provider's enroute charts.

    Args:
        session: A logged-in session; only borrowed, never closed here.
        day_mode: Day tiles when ``True``, night tiles otherwise.
        high_routes: High-altitude charts when ``True``, low otherwise.
        tile_host: Base URL of the tile server. Defaults to the session's
            chart settings.
        client: HTTPS client for downloads. One that hides URLs from debug
            output is created when omitted.
    """

    def __init__(
        self,
        session: AuthSession,
        day_mode: bool = True,
        high_routes: bool = False,
        tile_host: Optional[str] = None,
        client: Optional[HttpsClient] = None,
    ) -> None:
        self._session = session
        self._day_mode = day_mode
        self._high_routes = high_routes
        self._tile_host = (tile_host or session.charts.tile_host).rstrip("/")
        self._client = client or HttpsClient(hide_urls=True)
        self._cancel = CancelToken()

    # ------------------------------------------------------------------ #
    # Fixed source properties
    # ------------------------------------------------------------------ #

    def min_zoom_level(self) -> int:
        return MIN_ZOOM

    def max_zoom_level(self) -> int:
        return MAX_ZOOM

    def initial_zoom_level(self) -> int:
        return INITIAL_ZOOM

    def supports_world_coords(self) -> bool:
        return True

    def suggest_initial_center(self, page: int) -> Point:
        return Point(0.0, 0.0)

    def tile_dimensions(self, zoom: int) -> tuple[int, int]:
        return TILE_SIZE, TILE_SIZE

    def page_count(self) -> int:
        return 1

    def copyright_info(self) -> str:
        return COPYRIGHT

    # ------------------------------------------------------------------ #
    # Coordinates
    # ------------------------------------------------------------------ #

    def transform_zoomed_point(
        self, page: int, x: float, y: float, old_zoom: int, new_zoom: int
    ) -> Point:
        return mercator.transform_zoomed_point(x, y, old_zoom, new_zoom)

    def world_to_xy(self, lon: float, lat: float, zoom: int) -> Point:
        return mercator.world_to_xy(lon, lat, zoom)

    def xy_to_world(self, x: float, y: float, zoom: int) -> Point:
        return mercator.xy_to_world(x, y, zoom)

    def is_tile_valid(self, page: int, x: int, y: int, zoom: int) -> bool:
        """Return ``True`` if the tile exists on this source.

        Requires page 0, a zoom within the source's range and ``x``/``y``
        inside ``[0, 2**zoom)``. Nothing wraps around.
        """
        if page != 0:
            return False
        if not MIN_ZOOM <= zoom <= MAX_ZOOM:
            return False

        end = mercator.tile_count(zoom)
        if y < 0 or y >= end:
            return False
        if x < 0 or x >= end:
            return False
        return True

    def unique_tile_name(self, page: int, x: int, y: int, zoom: int) -> str:
        """Return the provider path of a tile, e.g. ``/ld-1x/10/540/696.png``.

        Raises:
            InvalidTileError: If :meth:`is_tile_valid` is ``False``.
        """
        if not self.is_tile_valid(page, x, y, zoom):
            raise InvalidTileError(
                f"Invalid coordinates: page={page} x={x} y={y} zoom={zoom}"
            )

        layer = "h" if self._high_routes else "l"
        mode = "d" if self._day_mode else "n"
        flipped_y = mercator.tile_count(zoom) - 1 - y
        return f"/{layer}{mode}-1x/{zoom}/{x}/{flipped_y}.png"

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    def load_tile_image(self, page: int, x: int, y: int, zoom: int) -> Image.Image:
        """Download and decode one tile.

        Clears the cancel flag first, so a :meth:`cancel_pending_loads` issued
        before this call has no effect on it.

        Raises:
            InvalidTileError: For coordinates outside the grid (no network call).
            NotLoggedInError: If the session holds no access token.
            CancelledError: If :meth:`cancel_pending_loads` is called meanwhile.
            TileDecodeError: If the response is not an image.
        """
        self._cancel.reset()
        path = self.unique_tile_name(page, x, y, zoom)
        credential = self._session.get_signed_credential(self._cancel)

        url = f"{self._tile_host}/{credential.key}{path}"
        data = self._client.download(url, self._cancel, cookies=credential.cookies)
        return decode_tile(data)

    def cancel_pending_loads(self) -> None:
        """Make in-flight loads fail at their next checkpoint."""
        self._cancel.cancel()

    def resume_loading(self) -> None:
        self._cancel.reset()

    def close(self) -> None:
        self._client.close()


def decode_tile(data: bytes) -> Image.Image:
    """Decode encoded tile bytes into a fully loaded image.

    Raises:
        TileDecodeError: If Pillow cannot identify or decode the data.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise TileDecodeError(f"Cannot decode tile image: {exc}") from exc
    return image

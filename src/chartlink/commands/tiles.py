"""Tile commands -- address and download enroute chart tiles.

Provides the ``chartlink tiles`` sub-command group:

* ``locate`` projects a longitude/latitude onto the tile grid.
* ``name`` prints the provider path of a tile.
* ``fetch`` logs in with the saved refresh token, downloads one tile and
  writes it as a PNG.

Negative coordinates must follow ``--`` so they are not read as options::

    chartlink tiles locate --zoom 10 -- -122.4 37.6
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from chartlink.commands import load_config
from chartlink.exceptions import ChartlinkError
from chartlink.models import TileAddress
from chartlink.output import error, format_response, info, success, suggest, warning
from chartlink.tiles.source import MAX_ZOOM, MIN_ZOOM


tiles_app = typer.Typer(no_args_is_help=True)

_ZOOM_HELP = f"Zoom level ({MIN_ZOOM}-{MAX_ZOOM})."


@tiles_app.command("locate")
def tiles_locate(
    lon: float = typer.Argument(help="Longitude in degrees."),
    lat: float = typer.Argument(help="Latitude in degrees."),
    zoom: int = typer.Option(10, "--zoom", "-z", help=_ZOOM_HELP),
) -> None:
    """Show the tile containing a world point.

    Prints the tile column and row plus the fractional tile-space position.

    Raises:
        typer.Exit: With code 2 for a latitude beyond the Mercator limit or
            a zoom outside the source's range.

    Example::

        chartlink tiles locate 8.55 47.45 --zoom 10
    """
    from chartlink.tiles.mercator import MAX_LATITUDE, world_to_xy

    if abs(lat) > MAX_LATITUDE:
        error(f"Latitude must be within +/-{MAX_LATITUDE:.4f} degrees, got {lat}")
        raise typer.Exit(code=2)
    if not -180.0 <= lon <= 180.0:
        error(f"Longitude must be within +/-180 degrees, got {lon}")
        raise typer.Exit(code=2)
    _check_zoom(zoom)

    point = world_to_xy(lon, lat, zoom)
    last = (1 << zoom) - 1
    format_response(
        {
            "x": min(int(point.x), last),
            "y": min(int(point.y), last),
            "zoom": zoom,
            "tile_x": point.x,
            "tile_y": point.y,
        }
    )


@tiles_app.command("name")
def tiles_name(
    ctx: typer.Context,
    x: int = typer.Argument(help="Tile column."),
    y: int = typer.Argument(help="Tile row, counted from the north."),
    zoom: int = typer.Option(..., "--zoom", "-z", help=_ZOOM_HELP),
    day: Optional[bool] = typer.Option(
        None, "--day/--night", help="Day or night colours (default: charts.day_mode)."
    ),
    high: Optional[bool] = typer.Option(
        None, "--high/--low", help="High or low routes (default: charts.high_routes)."
    ),
) -> None:
    """Print the provider path of a tile.

    Example::

        chartlink tiles name 3 2 --zoom 5 --night --high
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    try:
        with AuthSession(config.provider, charts=config.charts) as session:
            source = _make_source(session, config, day, high)
            try:
                name = source.unique_tile_name(*TileAddress(0, x, y, zoom))
            finally:
                source.close()
    except ChartlinkError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(name)


@tiles_app.command("fetch")
def tiles_fetch(
    ctx: typer.Context,
    x: int = typer.Argument(help="Tile column."),
    y: int = typer.Argument(help="Tile row, counted from the north."),
    zoom: int = typer.Option(..., "--zoom", "-z", help=_ZOOM_HELP),
    output: Path = typer.Option(..., "--output", "-o", help="PNG file to write."),
    day: Optional[bool] = typer.Option(
        None, "--day/--night", help="Day or night colours (default: charts.day_mode)."
    ),
    high: Optional[bool] = typer.Option(
        None, "--high/--low", help="High or low routes (default: charts.high_routes)."
    ),
) -> None:
    """Download one tile and save it as a PNG.

    Logs in with the saved refresh token first; run ``chartlink auth login``
    once beforehand.

    Raises:
        typer.Exit: With code 3 when there is no saved login, or the error's
            exit code if the download fails.

    Example::

        chartlink tiles fetch 540 327 --zoom 10 -o tile.png
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    try:
        with AuthSession.from_config(config) as session:
            if not session.can_relogin():
                error("Not logged in.")
                suggest("Log in first: chartlink auth login")
                raise typer.Exit(code=3)
            session.relogin()

            address = TileAddress(0, x, y, zoom)
            source = _make_source(session, config, day, high)
            try:
                info(f"Downloading tile {source.unique_tile_name(*address)}")
                image = source.load_tile_image(*address)
            finally:
                source.close()
    except ChartlinkError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if output.suffix.lower() != ".png":
        warning(f"{output} does not end in .png; writing PNG data anyway")
    output.parent.mkdir(parents=True, exist_ok=True)
    image.save(output, format="PNG")
    success(f"Saved {image.width}x{image.height} tile to {output}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_zoom(zoom: int) -> None:
    if not MIN_ZOOM <= zoom <= MAX_ZOOM:
        error(f"Zoom must be between {MIN_ZOOM} and {MAX_ZOOM}, got {zoom}")
        raise typer.Exit(code=2)


def _make_source(session, config, day: Optional[bool], high: Optional[bool]):  # noqa: ANN001, ANN202
    """Build a tile source, falling back to the configured chart preferences."""
    from chartlink.client import HttpsClient
    from chartlink.tiles import EnrouteChartSource

    return EnrouteChartSource(
        session,
        day_mode=config.charts.day_mode if day is None else day,
        high_routes=config.charts.high_routes if high is None else high,
        client=HttpsClient(
            timeout=config.request.timeout,
            verify=config.request.verify_ssl,
            hide_urls=True,
        ),
    )

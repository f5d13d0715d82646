"""Tests for EnrouteChartSource: tile addressing, validity and loading."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from PIL import Image

from chartlink.auth.session import AuthSession
from chartlink.client import HttpsClient
from chartlink.exceptions import (
    CancelledError,
    HTTPError,
    InvalidTileError,
    NotLoggedInError,
    TileDecodeError,
)
from chartlink.models import ChartsConfig, SignedCredential
from chartlink.tiles import EnrouteChartSource, decode_tile
from chartlink.tiles.source import COPYRIGHT


def _session() -> MagicMock:
    session = MagicMock(spec=AuthSession)
    session.charts = ChartsConfig(tile_host="https://tiles.test/")
    session.get_signed_credential.return_value = SignedCredential(
        key="sig123", cookies={"CloudFront-Key-Pair-Id": "kp"}
    )
    return session


class _HookedStream(httpx.SyncByteStream):
    def __init__(self, data: bytes, hook) -> None:  # noqa: ANN001
        self._data = data
        self._hook = hook

    def __iter__(self):  # noqa: ANN204
        half = len(self._data) // 2
        yield self._data[:half]
        self._hook()
        yield self._data[half:]


def _source(handler=None, **kwargs) -> tuple[EnrouteChartSource, MagicMock]:  # noqa: ANN001
    session = _session()
    client = HttpsClient(
        hide_urls=True,
        transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404))),
    )
    return EnrouteChartSource(session, client=client, **kwargs), session


class TestProperties:
    def test_fixed_values(self) -> None:
        source, _ = _source()
        assert source.min_zoom_level() == 3
        assert source.max_zoom_level() == 11
        assert source.initial_zoom_level() == 10
        assert source.supports_world_coords()
        assert source.suggest_initial_center(0) == (0.0, 0.0)
        assert source.tile_dimensions(7) == (256, 256)
        assert source.page_count() == 1
        assert source.copyright_info() == COPYRIGHT

    def test_coordinate_delegation(self) -> None:
        source, _ = _source()
        x, y = source.world_to_xy(0.0, 0.0, 4)
        assert (x, y) == pytest.approx((8.0, 8.0))
        lon, lat = source.xy_to_world(8.0, 8.0, 4)
        assert (lon, lat) == pytest.approx((0.0, 0.0), abs=1e-9)
        assert source.transform_zoomed_point(0, 1.5, 2.0, 3, 5) == (6.0, 8.0)


class TestValidity:
    @pytest.mark.parametrize(
        "page, x, y, zoom, valid",
        [
            (0, 0, 0, 3, True),
            (0, 7, 7, 3, True),
            (0, 8, 0, 3, False),
            (0, 0, 8, 3, False),
            (0, -1, 0, 3, False),
            (0, 0, -1, 3, False),
            (1, 0, 0, 3, False),
            (0, 0, 0, 2, False),
            (0, 2047, 2047, 11, True),
            (0, 0, 0, 12, False),
        ],
    )
    def test_is_tile_valid(self, page: int, x: int, y: int, zoom: int, valid: bool) -> None:
        source, _ = _source()
        assert source.is_tile_valid(page, x, y, zoom) is valid


class TestUniqueTileName:
    def test_day_low(self) -> None:
        source, _ = _source()
        assert source.unique_tile_name(0, 540, 327, 10) == "/ld-1x/10/540/696.png"

    def test_night_high(self) -> None:
        source, _ = _source(day_mode=False, high_routes=True)
        assert source.unique_tile_name(0, 3, 2, 5) == "/hn-1x/5/3/29.png"

    def test_row_flip_edges(self) -> None:
        source, _ = _source()
        assert source.unique_tile_name(0, 0, 0, 3) == "/ld-1x/3/0/7.png"
        assert source.unique_tile_name(0, 0, 7, 3) == "/ld-1x/3/0/0.png"

    def test_invalid_raises(self) -> None:
        source, _ = _source()
        with pytest.raises(InvalidTileError) as exc_info:
            source.unique_tile_name(0, 8, 0, 3)
        assert exc_info.value.exit_code == 2


class TestLoadTileImage:
    def test_downloads_with_signed_credential(self, png_bytes: bytes) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=png_bytes)

        source, session = _source(handler)
        image = source.load_tile_image(0, 3, 2, 5)

        assert image.size == (256, 256)
        assert str(seen[0].url) == "https://tiles.test/sig123/ld-1x/5/3/29.png"
        assert seen[0].headers["Cookie"] == "CloudFront-Key-Pair-Id=kp"
        session.get_signed_credential.assert_called_once()

    def test_explicit_tile_host(self, png_bytes: bytes) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=png_bytes)

        source, _ = _source(handler, tile_host="https://mirror.test")
        source.load_tile_image(0, 0, 0, 3)
        assert str(seen[0].url) == "https://mirror.test/sig123/ld-1x/3/0/7.png"

    def test_invalid_tile_makes_no_request(self) -> None:
        calls: list[httpx.Request] = []
        source, session = _source(lambda r: calls.append(r) or httpx.Response(200))

        with pytest.raises(InvalidTileError):
            source.load_tile_image(0, 0, 0, 12)
        assert calls == []
        session.get_signed_credential.assert_not_called()

    def test_not_logged_in(self) -> None:
        source, session = _source()
        session.get_signed_credential.side_effect = NotLoggedInError("Not logged in")
        with pytest.raises(NotLoggedInError):
            source.load_tile_image(0, 0, 0, 3)

    def test_http_error(self) -> None:
        source, _ = _source(lambda r: httpx.Response(403, text="Forbidden"))
        with pytest.raises(HTTPError):
            source.load_tile_image(0, 0, 0, 3)

    def test_undecodable_body(self) -> None:
        source, _ = _source(lambda r: httpx.Response(200, content=b"<html>nope</html>"))
        with pytest.raises(TileDecodeError):
            source.load_tile_image(0, 0, 0, 3)

    def test_cancel_during_download(self, png_bytes: bytes) -> None:
        holder: list[EnrouteChartSource] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, stream=_HookedStream(png_bytes, lambda: holder[0].cancel_pending_loads())
            )

        source, _ = _source(handler)
        holder.append(source)
        with pytest.raises(CancelledError):
            source.load_tile_image(0, 0, 0, 3)

    def test_earlier_cancel_does_not_affect_new_load(self, png_bytes: bytes) -> None:
        source, _ = _source(lambda r: httpx.Response(200, content=png_bytes))
        source.cancel_pending_loads()
        assert source.load_tile_image(0, 0, 0, 3).size == (256, 256)

    def test_cancel_controls_idempotent(self) -> None:
        source, _ = _source()
        source.cancel_pending_loads()
        source.cancel_pending_loads()
        assert source._cancel.is_cancelled
        source.resume_loading()
        source.resume_loading()
        assert not source._cancel.is_cancelled

    def test_signed_credential_gets_source_cancel_token(self, png_bytes: bytes) -> None:
        source, session = _source(lambda r: httpx.Response(200, content=png_bytes))
        source.load_tile_image(0, 0, 0, 3)
        (token,), _ = session.get_signed_credential.call_args
        assert token is source._cancel


class TestDecodeTile:
    def test_decodes_png(self, png_bytes: bytes) -> None:
        image = decode_tile(png_bytes)
        assert isinstance(image, Image.Image)
        assert image.getpixel((0, 0)) == (10, 20, 30, 255)

    def test_png_signature_then_junk(self) -> None:
        with pytest.raises(TileDecodeError):
            decode_tile(b"\x89PNG\r\n\x1a\n" + b"junk")

    def test_empty(self) -> None:
        with pytest.raises(TileDecodeError):
            decode_tile(b"")

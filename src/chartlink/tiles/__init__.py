"""Chart tiles: Web Mercator maths and the enroute chart source.

Re-exports::

    from chartlink.tiles import EnrouteChartSource, world_to_xy, xy_to_world
"""

from chartlink.tiles.mercator import transform_zoomed_point, world_to_xy, xy_to_world
from chartlink.tiles.source import EnrouteChartSource, decode_tile

__all__ = [
    "EnrouteChartSource",
    "decode_tile",
    "transform_zoomed_point",
    "world_to_xy",
    "xy_to_world",
]

"""Region Splitter - quarter a map region for recursive narrowing."""

from __future__ import annotations

from harvester.core.exceptions import InvalidRegionException

from .query_state import SearchRegion


def split_region(region: SearchRegion) -> list[SearchRegion]:
    """Split a region's map bounds into four quadrants

    Quadrants share their inner edges exactly (same midpoint floats), so the
    union covers the parent with no gaps. Each inherits the filters, resets
    pagination, is one split level deeper and one zoom level closer.
    Order is fixed (SW, SE, NW, NE) so re-splitting is deterministic.

    Raises:
        InvalidRegionException: region has no usable map bounds
    """
    bounds = region.map_bounds
    if bounds is None:
        raise InvalidRegionException("region has no mapBounds to split")

    north, south, east, west = bounds["north"], bounds["south"], bounds["east"], bounds["west"]
    if north <= south or east <= west:
        raise InvalidRegionException("degenerate mapBounds", details={"mapBounds": bounds})

    mid_lat = (north + south) / 2
    mid_lng = (east + west) / 2

    quadrants = [
        {"north": mid_lat, "south": south, "east": mid_lng, "west": west},
        {"north": mid_lat, "south": south, "east": east, "west": mid_lng},
        {"north": north, "south": mid_lat, "east": mid_lng, "west": west},
        {"north": north, "south": mid_lat, "east": east, "west": mid_lng},
    ]

    extra = {}
    zoom = region.query_state.get("mapZoom")
    if isinstance(zoom, (int, float)) and not isinstance(zoom, bool):
        extra["mapZoom"] = zoom + 1

    return [region.with_bounds(q, **extra) for q in quadrants]

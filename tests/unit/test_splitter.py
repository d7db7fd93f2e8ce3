"""Region splitter tests"""
import pytest

from harvester.core.exceptions import InvalidRegionException
from harvester.engine.query_state import SearchRegion
from harvester.engine.splitter import split_region

BOUNDS = {"north": 40.0, "south": 39.0, "east": -104.0, "west": -106.0}
STATE = {"mapBounds": BOUNDS, "filterState": {"isForRent": {"value": True}}, "mapZoom": 8}


def _area(b):
    return (b["north"] - b["south"]) * (b["east"] - b["west"])


class TestSplitRegion:
    def test_four_quadrants_one_level_deeper(self):
        parent = SearchRegion(STATE, split_depth=2, explicit_bounds=True)
        children = split_region(parent)

        assert len(children) == 4
        for child in children:
            assert child.split_depth == 3
            assert child.page is None
            assert child.explicit_bounds
            assert child.query_state["filterState"] == STATE["filterState"]
            assert child.query_state["mapZoom"] == 9

    def test_quadrants_cover_parent_without_gaps(self):
        children = [c.map_bounds for c in split_region(SearchRegion(STATE))]
        sw, se, nw, ne = children

        assert sum(_area(b) for b in children) == pytest.approx(_area(BOUNDS))
        assert sw["east"] == se["west"]
        assert nw["east"] == ne["west"]
        assert sw["north"] == nw["south"]
        assert se["north"] == ne["south"]
        assert min(b["south"] for b in children) == BOUNDS["south"]
        assert max(b["north"] for b in children) == BOUNDS["north"]
        assert min(b["west"] for b in children) == BOUNDS["west"]
        assert max(b["east"] for b in children) == BOUNDS["east"]

    def test_deterministic(self):
        region = SearchRegion(STATE)
        assert split_region(region) == split_region(region)

    def test_pagination_region_splits_into_unpaginated_children(self):
        children = split_region(SearchRegion(STATE, page=3))
        assert all(c.page is None for c in children)

    def test_no_zoom_stays_absent(self):
        state = {"mapBounds": BOUNDS}
        assert all("mapZoom" not in c.query_state for c in split_region(SearchRegion(state)))

    def test_missing_bounds(self):
        with pytest.raises(InvalidRegionException):
            split_region(SearchRegion({"usersSearchTerm": "Denver"}))

    def test_degenerate_bounds(self):
        flat = {"mapBounds": {"north": 1.0, "south": 1.0, "east": 2.0, "west": 0.0}}
        with pytest.raises(InvalidRegionException):
            split_region(SearchRegion(flat))

from __future__ import annotations

from .classifier import classify_node, classify_nodes, parse_number
from .models import CoordinateFlavor, GeographicCoord, LocalCoord, NodeRecord


def _local(node_id: str, x: float, y: float, ele: float = 0.0) -> NodeRecord:
    return NodeRecord(node_id, tags={"local_x": str(x), "local_y": str(y), "ele": str(ele)})


def _geo(node_id: str, lat: float, lon: float, **tags: str) -> NodeRecord:
    return NodeRecord(node_id, tags=dict(tags), lat=str(lat), lon=str(lon))


def test_parse_number() -> None:
    assert parse_number("1.5") == 1.5
    assert parse_number(" -2 ") == -2.0
    assert parse_number(3) == 3.0
    assert parse_number("nan") is None
    assert parse_number("inf") is None
    assert parse_number("abc") is None
    assert parse_number(None) is None
    assert parse_number(True) is None


def test_local_tags_take_precedence_over_lat_lon() -> None:
    record = NodeRecord("1", tags={"local_x": "10", "local_y": "20", "ele": "3"}, lat="35.0", lon="139.0")
    node = classify_node(record)

    assert node is not None
    assert node.coord == LocalCoord(x=10.0, y=20.0, z=3.0)


def test_geographic_node_keeps_grid_code_and_elevation() -> None:
    node = classify_node(_geo("7", 35.5, 139.5, ele="12.5", mgrs_code="54SUE"))

    assert node is not None
    assert node.coord == GeographicCoord(lat=35.5, lon=139.5, z=12.5, mgrs_code="54SUE")


def test_half_local_node_falls_back_to_lat_lon() -> None:
    node = classify_node(NodeRecord("1", tags={"local_x": "10"}, lat="1", lon="2"))

    assert node is not None
    assert isinstance(node.coord, GeographicCoord)


def test_unresolvable_nodes_are_dropped() -> None:
    result = classify_nodes([
        _local("1", 0, 0),
        NodeRecord("2", tags={"local_x": "oops", "local_y": "1"}),
        NodeRecord("3", lat="north", lon="5"),
    ])

    assert set(result.nodes) == {"1"}
    assert result.dropped_node_ids == ("2", "3")


def test_flavors() -> None:
    assert classify_nodes([_local("1", 0, 0)]).flavor == CoordinateFlavor.ALL_LOCAL
    assert classify_nodes([_geo("1", 35, 139)]).flavor == CoordinateFlavor.GEOGRAPHIC
    assert classify_nodes([_local("1", 0, 0), _geo("2", 35, 139)]).flavor == CoordinateFlavor.MIXED
    assert classify_nodes([]).flavor == CoordinateFlavor.UNKNOWN


def test_sample_is_first_geographic_node() -> None:
    result = classify_nodes([
        _local("1", 0, 0),
        _geo("2", 10.0, 20.0, mgrs_code="34PDA"),
        _geo("3", 30.0, 40.0),
    ])

    assert result.sample is not None
    assert (result.sample.lat, result.sample.lon, result.sample.mgrs_code) == (10.0, 20.0, "34PDA")


def test_duplicate_ids_last_wins() -> None:
    result = classify_nodes([_local("1", 0, 0), _local("1", 5, 6)])

    assert result.nodes["1"].coord == LocalCoord(x=5.0, y=6.0, z=0.0)

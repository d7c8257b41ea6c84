from __future__ import annotations

from .utm_manager import UTMManager


def test_grid_code_zone_wins_over_longitude() -> None:
    manager = UTMManager()
    zone, northern = manager.get_utm_zone(35.0, -100.0, "54SVE12345678")

    assert zone == 54
    assert northern is True


def test_grid_code_is_case_insensitive() -> None:
    assert UTMManager().zone_from_grid_code(" 54sve12345678 ") == 54


def test_malformed_grid_codes_fall_back_to_longitude() -> None:
    manager = UTMManager()
    for bad in ("", "VE1234", "54I", "61SVE", "0SVE", "SVE54"):
        assert manager.zone_from_grid_code(bad) is None
        assert manager.get_utm_zone(35.0, 139.0, bad) == (54, True)


def test_longitude_zone_formula() -> None:
    manager = UTMManager()
    # floor((139 + 180) / 6) + 1
    assert manager.zone_from_longitude(139.0) == 54
    assert manager.zone_from_longitude(-180.0) == 1
    assert manager.zone_from_longitude(180.0) == 60
    assert manager.zone_from_longitude(-3.0) == 30


def test_resolve_epsg_hemispheres() -> None:
    manager = UTMManager()
    assert manager.resolve_epsg(35.0, 139.0) == "EPSG:32654"
    assert manager.resolve_epsg(0.0, 139.0) == "EPSG:32654"
    assert manager.resolve_epsg(-33.9, 18.4) == "EPSG:32734"
    assert manager.resolve_epsg(35.0, 139.0, "53SPU") == "EPSG:32653"


def test_resolve_epsg_pads_single_digit_zones() -> None:
    assert UTMManager().format_epsg(5, True) == "EPSG:32605"
    assert UTMManager().format_epsg(5, False) == "EPSG:32705"


def test_resolution_is_deterministic() -> None:
    manager = UTMManager()
    inputs = [(35.68, 139.76, None), (35.68, 139.76, "54SUE"), (-12.0, -77.0, None)]
    first = [manager.resolve_epsg(*args) for args in inputs]
    second = [UTMManager().resolve_epsg(*args) for args in inputs]

    assert first == second

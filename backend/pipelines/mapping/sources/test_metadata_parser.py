from __future__ import annotations

import pytest

from .metadata_parser import (
    DEFAULT_PROJECTOR,
    MetadataParseError,
    parse_origin_config,
    parse_projector_info,
    parse_projector_info_or_default,
)


def test_mgrs_projector() -> None:
    info = parse_projector_info(b"projector_type: MGRS\nvertical_datum: WGS84\nmgrs_grid: 54SUE\n")

    assert info.projector_type == "MGRS"
    assert info.mgrs_grid == "54SUE"
    assert info.vertical_datum == "WGS84"
    assert info.is_mgrs
    assert not info.is_local


def test_local_projector() -> None:
    info = parse_projector_info("projector_type: Local\n")

    assert info.is_local
    assert info.mgrs_grid is None


def test_missing_projector_type_raises() -> None:
    with pytest.raises(MetadataParseError):
        parse_projector_info("vertical_datum: WGS84\n")


def test_invalid_yaml_raises() -> None:
    with pytest.raises(MetadataParseError):
        parse_projector_info("projector_type: [MGRS\n")


def test_default_on_failure() -> None:
    info, error = parse_projector_info_or_default(b"- just\n- a list\n")

    assert info == DEFAULT_PROJECTOR
    assert info.is_mgrs
    assert error

    assert parse_projector_info_or_default(None) == (DEFAULT_PROJECTOR, None)


def test_ros_parameter_origin() -> None:
    payload = """
/**:
  ros__parameters:
    map_origin:
      latitude: 35.6762
      longitude: 139.6503
      elevation: 40.0
      roll: 0.0
      pitch: 0.0
      yaw: 1.57
"""
    origin = parse_origin_config(payload)

    assert (origin.latitude, origin.longitude, origin.elevation) == (35.6762, 139.6503, 40.0)
    assert origin.yaw == 1.57
    assert origin.roll == 0.0


def test_flat_origin_defaults_missing_angles() -> None:
    origin = parse_origin_config(b"latitude: '-33.9'\nlongitude: 18.4\n")

    assert origin.latitude == -33.9
    assert origin.longitude == 18.4
    assert (origin.elevation, origin.roll, origin.pitch, origin.yaw) == (0.0, 0.0, 0.0, 0.0)


def test_origin_requires_latitude_and_longitude() -> None:
    with pytest.raises(MetadataParseError):
        parse_origin_config("map_origin:\n  latitude: 35.0\n")
    with pytest.raises(MetadataParseError):
        parse_origin_config("map_origin:\n  latitude: north\n  longitude: 139.0\n")

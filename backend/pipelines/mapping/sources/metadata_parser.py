"""
Map metadata readers
Projector info and map origin YAML documents
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import yaml

from pipelines.mapping.frame.classifier import parse_number
from pipelines.mapping.frame.models import OriginConfig, ProjectorInfo

logger = logging.getLogger(__name__)

DEFAULT_PROJECTOR = ProjectorInfo(projector_type="MGRS")


class MetadataParseError(ValueError):
    """A metadata YAML document is unreadable or lacks required keys."""


def _load(payload: Union[bytes, str]) -> Dict[str, Any]:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    try:
        data = yaml.safe_load(payload)
    except yaml.YAMLError as e:
        raise MetadataParseError(f"Invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise MetadataParseError("Expected a YAML mapping at the document root")
    return data


def _find_mapping(data: Any, required: tuple) -> Optional[Dict[str, Any]]:
    """Depth-first search for the first mapping holding all `required` keys."""
    if isinstance(data, dict):
        if all(key in data for key in required):
            return data
        for value in data.values():
            found = _find_mapping(value, required)
            if found is not None:
                return found
    return None


def parse_projector_info(payload: Union[bytes, str]) -> ProjectorInfo:
    """
    Raises:
        MetadataParseError: no `projector_type` anywhere in the document
    """
    section = _find_mapping(_load(payload), ("projector_type",))
    if section is None:
        raise MetadataParseError("projector_type not found")
    projector_type = str(section.get("projector_type") or "").strip()
    if not projector_type:
        raise MetadataParseError("projector_type is empty")
    mgrs_grid = section.get("mgrs_grid")
    vertical_datum = section.get("vertical_datum")
    info = ProjectorInfo(
        projector_type=projector_type,
        mgrs_grid=str(mgrs_grid).strip() if mgrs_grid else None,
        vertical_datum=str(vertical_datum) if vertical_datum else None,
    )
    logger.info(f"🧭 Projector: {info.projector_type} grid={info.mgrs_grid}")
    return info


def parse_projector_info_or_default(payload: Optional[Union[bytes, str]]) -> tuple:
    """(ProjectorInfo, error message or None). Failures degrade to MGRS."""
    if payload is None:
        return DEFAULT_PROJECTOR, None
    try:
        return parse_projector_info(payload), None
    except MetadataParseError as e:
        return DEFAULT_PROJECTOR, str(e)


def parse_origin_config(payload: Union[bytes, str]) -> OriginConfig:
    """
    Accepts `map_origin:` blocks (also under ROS parameter namespaces) and flat
    mappings with latitude/longitude.

    Raises:
        MetadataParseError: latitude/longitude missing or not numeric
    """
    data = _load(payload)
    origin = data.get("map_origin") if isinstance(data.get("map_origin"), dict) else None
    if origin is None:
        origin = _find_mapping(data, ("latitude", "longitude"))
    if origin is None:
        raise MetadataParseError("map origin latitude/longitude not found")

    latitude = parse_number(origin.get("latitude"))
    longitude = parse_number(origin.get("longitude"))
    if latitude is None or longitude is None:
        raise MetadataParseError("map origin latitude/longitude must be numeric")

    def angle(key: str) -> float:
        value = parse_number(origin.get(key))
        return value if value is not None else 0.0

    config = OriginConfig(
        latitude=latitude,
        longitude=longitude,
        elevation=angle("elevation"),
        roll=angle("roll"),
        pitch=angle("pitch"),
        yaw=angle("yaw"),
    )
    logger.info(f"📍 Map origin config: lat={config.latitude} lon={config.longitude} ele={config.elevation}")
    return config

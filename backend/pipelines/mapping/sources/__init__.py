"""
Map Sources Module
Readers for vector maps, point clouds and map metadata
"""
from .metadata_parser import (
    DEFAULT_PROJECTOR,
    MetadataParseError,
    parse_origin_config,
    parse_projector_info,
    parse_projector_info_or_default,
)
from .osm_parser import VectorMapParseError, parse_osm
from .pcd_parser import PointCloudParseError, parse_pcd

__all__ = [
    "DEFAULT_PROJECTOR",
    "MetadataParseError",
    "PointCloudParseError",
    "VectorMapParseError",
    "parse_origin_config",
    "parse_osm",
    "parse_pcd",
    "parse_projector_info",
    "parse_projector_info_or_default",
]

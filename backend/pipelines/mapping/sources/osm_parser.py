"""
OSM / Lanelet2 XML reader
Turns vector-map XML into plain node and way records
"""
from __future__ import annotations

import logging
from typing import Dict, List, Union
import xml.etree.ElementTree as ET

from pipelines.mapping.frame.models import NodeRecord, VectorMapRecord, WayRecord

logger = logging.getLogger(__name__)


class VectorMapParseError(ValueError):
    """The vector map payload is not a readable OSM document."""


def _tags(element: ET.Element) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for tag in element.findall("tag"):
        key = tag.get("k")
        if key is None:
            continue
        tags[key] = tag.get("v", "")
    return tags


def parse_osm(payload: Union[bytes, str]) -> VectorMapRecord:
    """
    Parse an OSM document into records. Values stay as strings; the classifier
    decides what is numeric.

    Raises:
        VectorMapParseError: malformed XML or a root other than <osm>
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise VectorMapParseError(f"Invalid vector map XML: {e}") from e

    if root.tag != "osm":
        raise VectorMapParseError(f"Expected <osm> root element, found <{root.tag}>")

    nodes: List[NodeRecord] = []
    unnamed = 0
    for element in root.iter("node"):
        node_id = element.get("id")
        if node_id is None:
            unnamed += 1
            continue
        nodes.append(
            NodeRecord(
                node_id=node_id,
                tags=_tags(element),
                lat=element.get("lat"),
                lon=element.get("lon"),
            )
        )

    ways: List[WayRecord] = []
    for element in root.iter("way"):
        way_id = element.get("id")
        if way_id is None:
            continue
        refs = tuple(nd.get("ref") for nd in element.findall("nd") if nd.get("ref") is not None)
        ways.append(WayRecord(way_id=way_id, node_refs=refs, tags=_tags(element)))

    if unnamed:
        logger.warning(f"⚠️ Skipped {unnamed} <node> elements without an id")
    logger.info(f"🗺️ Parsed vector map: {len(nodes)} nodes, {len(ways)} ways")
    return VectorMapRecord(nodes=tuple(nodes), ways=tuple(ways), unnamed_nodes=unnamed)

"""
UTM Manager
Handles UTM zone determination and EPSG identifier derivation
"""
import logging
import math
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# 1-2 zone digits followed by a latitude band letter (C..X without I and O)
MGRS_ZONE_PATTERN = re.compile(r"^(\d{1,2})[C-HJ-NP-X]")

MIN_ZONE = 1
MAX_ZONE = 60


class UTMManager:
    """
    Resolves the UTM zone (and its EPSG-style identifier) for a geographic sample.

    An MGRS grid token, when well formed, short-cuts the longitude math. This
    resolver is total: a missing or malformed grid token silently falls back to
    the longitude-derived zone.
    """

    def zone_from_grid_code(self, grid_code: Optional[str]) -> Optional[int]:
        """Leading zone number of an MGRS-style token, or None when malformed."""
        if not grid_code or not isinstance(grid_code, str):
            return None
        match = MGRS_ZONE_PATTERN.match(grid_code.strip().upper())
        if not match:
            return None
        zone_number = int(match.group(1))
        if not (MIN_ZONE <= zone_number <= MAX_ZONE):
            return None
        return zone_number

    def zone_from_longitude(self, lon: float) -> int:
        """Standard 6-degree zone number, clamped to 1..60."""
        zone_number = int(math.floor((lon + 180.0) / 6.0)) + 1
        return max(MIN_ZONE, min(MAX_ZONE, zone_number))

    def get_utm_zone(self, lat: float, lon: float, grid_code: Optional[str] = None) -> Tuple[int, bool]:
        """
        Determine (zone_number, is_northern) for a sample coordinate.

        Args:
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees
            grid_code: Optional MGRS-style grid token (e.g. "54SVE12345678")
        """
        zone_number = self.zone_from_grid_code(grid_code)
        if zone_number is None:
            if grid_code:
                logger.debug(f"📍 Grid code {grid_code!r} not usable, deriving zone from longitude {lon}")
            zone_number = self.zone_from_longitude(lon)
        return zone_number, lat >= 0

    def format_epsg(self, zone_number: int, is_northern: bool) -> str:
        family = "326" if is_northern else "327"
        return f"EPSG:{family}{zone_number:02d}"

    def resolve_epsg(self, lat: float, lon: float, grid_code: Optional[str] = None) -> str:
        """
        EPSG-style identifier for the UTM zone covering the sample.

        Returns:
            str: e.g. "EPSG:32654" (north) or "EPSG:32733" (south)
        """
        zone_number, is_northern = self.get_utm_zone(lat, lon, grid_code)
        epsg = self.format_epsg(zone_number, is_northern)
        logger.debug(f"📍 Determined UTM {zone_number}{'N' if is_northern else 'S'} ({epsg}) for ({lat}, {lon})")
        return epsg

"""
Small geographic helpers shared by the source adapters.
"""

import math
from dataclasses import dataclass

# Web Mercator cannot represent the poles
MAX_MERCATOR_LATITUDE = 85.05112878


@dataclass
class BBox:
    west: float
    south: float
    east: float
    north: float


@dataclass
class TileCoordinates:
    zoom: int
    row: int
    col: int


def point_bbox(lat: float, lon: float, half_size_deg: float = 0.05) -> BBox:
    """Square box around a point; 0.05 degrees is roughly 5.5km."""
    return BBox(
        west=lon - half_size_deg,
        south=lat - half_size_deg,
        east=lon + half_size_deg,
        north=lat + half_size_deg,
    )


def tile_coordinates(lat: float, lon: float, zoom: int) -> TileCoordinates:
    """Slippy-map tile containing a point at the given zoom level."""
    lat = max(-MAX_MERCATOR_LATITUDE, min(MAX_MERCATOR_LATITUDE, lat))
    n = 2**zoom
    lat_rad = math.radians(lat)

    col = int((lon + 180.0) / 360.0 * n)
    row = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)

    return TileCoordinates(
        zoom=zoom,
        row=min(max(row, 0), n - 1),
        col=min(max(col, 0), n - 1),
    )


def format_pixel_size(resolution_meters: int) -> str:
    if resolution_meters >= 1000:
        km = resolution_meters / 1000
        km_text = f"{km:g}"
        return f"{km_text}km × {km_text}km"
    return f"{resolution_meters}m × {resolution_meters}m"

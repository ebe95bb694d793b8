"""
Educational context attached to responses: what a pixel size can show,
how often the sensor revisits, and what the data cannot tell you.
"""

from typing import Any

from eohub.geo import format_pixel_size
from eohub.models import DataResponse, SourceData, SourceDescriptor


def detection_capability(resolution_meters: int) -> list[str]:
    if resolution_meters <= 30:
        return [
            "Individual trees and farm equipment",
            "Small field boundaries and paths",
            "Detailed crop health variations",
            "Infrastructure and buildings",
        ]
    if resolution_meters <= 250:
        return [
            "Field boundaries for large fields",
            "General crop health patterns",
            "Large water bodies and forests",
            "Major infrastructure",
        ]
    if resolution_meters <= 1000:
        return [
            "Large agricultural regions",
            "Major landscape features",
            "Regional vegetation patterns",
            "Large urban areas",
        ]
    return [
        "Continental-scale patterns",
        "Regional climate effects",
        "Major biome boundaries",
        "Global trends only",
    ]


def data_limitations(product: str) -> list[str]:
    limitations = []
    if product.startswith("SMAP"):
        limitations += [
            "Cannot penetrate through dense vegetation",
            "Less accurate over frozen or snow-covered ground",
            "9km resolution averages over large areas",
        ]
    if "NDVI" in product or "LANDSAT" in product or "MODIS" in product:
        limitations += [
            "Affected by cloud cover",
            "May show atmospheric interference",
        ]
    if product.startswith("GPM"):
        limitations.append("Satellite estimates can miss very local convective storms")
    return limitations


def enrich(data: SourceData, descriptor: SourceDescriptor) -> dict[str, Any]:
    """Merge adapter-provided context with resolution-level context."""
    resolution = descriptor.native_resolution
    educational: dict[str, Any] = {
        "resolution": resolution,
        "pixel_size": format_pixel_size(resolution),
        "source": descriptor.label,
        "detection_capability": detection_capability(resolution),
        "revisit_time": descriptor.revisit_time,
        "limitations": data_limitations(descriptor.product),
    }
    if descriptor.depth_range:
        educational["depth"] = descriptor.depth_range
    educational.update(data.educational)
    return educational


def explain_data_limitations(response: DataResponse) -> list[str]:
    """Plain-language caveats for a response, based on its pixel size and depth."""
    limitations: list[str] = []
    resolution = response.educational.get("resolution", response.resolution_meters)

    if resolution >= 9000:
        limitations += [
            "Large pixel size (9-11km) averages conditions over vast areas",
            "Cannot detect features smaller than several kilometers",
            "Useful for regional trends but not field-level precision",
        ]
    elif resolution >= 250:
        limitations += [
            "Medium resolution can detect field boundaries but not within-field variation",
            "Good for monitoring large agricultural areas",
        ]
    else:
        limitations += [
            "High resolution shows detailed patterns but covers smaller areas",
            "Requires more data storage and processing",
        ]

    depth = response.educational.get("depth")
    if depth == "0-5cm":
        limitations += [
            "Surface moisture may not reflect root zone conditions",
            "Can be misleading for deep-rooted crops",
        ]
    elif depth == "0-100cm":
        limitations += [
            "Root zone average may mask surface drying",
            "Best for understanding overall plant water stress",
        ]

    return limitations

"""
Product catalogue and resolution routing.

Each product belongs to exactly one adapter. Resolution-bucketed kinds pick
the finest product whose max resolution covers the request; fixed kinds
always map to their single product.
"""

from eohub.exceptions import UnsupportedResolutionError
from eohub.models import DataKind, Depth, SourceDescriptor

SOURCE_DESCRIPTORS: dict[str, SourceDescriptor] = {
    d.product: d
    for d in [
        SourceDescriptor(
            product="SMAP_L3",
            kind=DataKind.SOIL_MOISTURE,
            adapter_id="cropcasma",
            native_resolution=9000,
            max_resolution=9000,
            label="SMAP Level 3",
            revisit_time="2-3 days",
            depth=Depth.SURFACE,
            depth_range="0-5cm",
        ),
        SourceDescriptor(
            product="SMAP_L4",
            kind=DataKind.SOIL_MOISTURE,
            adapter_id="cropcasma",
            native_resolution=9000,
            max_resolution=9000,
            label="SMAP Level 4",
            revisit_time="Daily",
            depth=Depth.ROOT_ZONE,
            depth_range="0-100cm",
        ),
        SourceDescriptor(
            product="LANDSAT_NDVI",
            kind=DataKind.VEGETATION,
            adapter_id="appeears",
            native_resolution=30,
            max_resolution=30,
            label="Landsat 8/9",
            revisit_time="16 days",
        ),
        SourceDescriptor(
            product="MODIS_NDVI",
            kind=DataKind.VEGETATION,
            adapter_id="appeears",
            native_resolution=250,
            max_resolution=250,
            label="MODIS Terra/Aqua",
            revisit_time="1-2 days",
        ),
        SourceDescriptor(
            product="VIIRS_NDVI",
            kind=DataKind.VEGETATION,
            adapter_id="worldview",
            native_resolution=375,
            max_resolution=375,
            label="VIIRS (Suomi NPP)",
            revisit_time="Daily",
        ),
        SourceDescriptor(
            product="GPM_PRECIPITATION",
            kind=DataKind.PRECIPITATION,
            adapter_id="appeears",
            native_resolution=11000,
            max_resolution=11000,
            label="GPM (Global Precipitation Measurement)",
            revisit_time="30 minutes",
        ),
        SourceDescriptor(
            product="LANDSAT_IMAGERY",
            kind=DataKind.IMAGERY,
            adapter_id="worldview",
            native_resolution=30,
            max_resolution=30,
            label="Landsat WELD true color",
            revisit_time="16 days",
        ),
        SourceDescriptor(
            product="MODIS_IMAGERY",
            kind=DataKind.IMAGERY,
            adapter_id="worldview",
            native_resolution=250,
            max_resolution=250,
            label="MODIS Terra true color",
            revisit_time="1-2 days",
        ),
        SourceDescriptor(
            product="VIIRS_IMAGERY",
            kind=DataKind.IMAGERY,
            adapter_id="worldview",
            native_resolution=375,
            max_resolution=375,
            label="VIIRS (Suomi NPP) true color",
            revisit_time="Daily",
        ),
    ]
}

# finest first
RESOLUTION_BUCKETS: dict[DataKind, list[str]] = {
    DataKind.VEGETATION: ["LANDSAT_NDVI", "MODIS_NDVI", "VIIRS_NDVI"],
    DataKind.IMAGERY: ["LANDSAT_IMAGERY", "MODIS_IMAGERY", "VIIRS_IMAGERY"],
}

SOIL_MOISTURE_BY_DEPTH: dict[Depth, str] = {
    Depth.SURFACE: "SMAP_L3",
    Depth.ROOT_ZONE: "SMAP_L4",
}

FIXED_PRODUCTS: dict[DataKind, str] = {
    DataKind.PRECIPITATION: "GPM_PRECIPITATION",
}


def get_descriptor(product: str) -> SourceDescriptor:
    try:
        return SOURCE_DESCRIPTORS[product]
    except KeyError:
        raise ValueError(f"Unknown product: {product}") from None


def select_source(
    kind: DataKind,
    resolution_meters: int,
    depth: Depth | None = None,
) -> SourceDescriptor:
    """
    Pick the product that serves kind at the requested resolution.

    Args:
        kind: Requested data kind
        resolution_meters: Desired ground resolution
        depth: Soil moisture depth, surface when omitted

    Raises:
        UnsupportedResolutionError: Resolution is not positive or coarser
            than every product of a bucketed kind
    """
    kind = DataKind(kind)
    if resolution_meters <= 0:
        raise UnsupportedResolutionError(kind.value, resolution_meters)

    if kind is DataKind.SOIL_MOISTURE:
        return SOURCE_DESCRIPTORS[SOIL_MOISTURE_BY_DEPTH[depth or Depth.SURFACE]]

    if kind in FIXED_PRODUCTS:
        return SOURCE_DESCRIPTORS[FIXED_PRODUCTS[kind]]

    for product in RESOLUTION_BUCKETS[kind]:
        descriptor = SOURCE_DESCRIPTORS[product]
        if resolution_meters <= descriptor.max_resolution:
            return descriptor

    raise UnsupportedResolutionError(kind.value, resolution_meters)

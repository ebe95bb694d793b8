"""
SMAP soil moisture sources.
"""

from eohub.datasource.smap.cropcasma import CropCasmaAdapter, classify_moisture

__all__ = ["CropCasmaAdapter", "classify_moisture"]

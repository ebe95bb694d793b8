"""
AppEEARS point-sample sources (NDVI, precipitation).
"""

from eohub.datasource.appeears.appeears import AppEearsAdapter, precipitation_stats

__all__ = ["AppEearsAdapter", "precipitation_stats"]

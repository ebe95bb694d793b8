"""
GIBS / Worldview imagery sources.
"""

from eohub.datasource.worldview.worldview import WorldviewAdapter

__all__ = ["WorldviewAdapter"]

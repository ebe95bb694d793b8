"""
Resolution router and response assembly.
"""

from eohub.integrator.education import explain_data_limitations
from eohub.integrator.fallback import OfflineFallbackGenerator
from eohub.integrator.quality import compute_statistics, validate_data_quality
from eohub.integrator.router import DataIntegrator

__all__ = [
    "DataIntegrator",
    "OfflineFallbackGenerator",
    "compute_statistics",
    "validate_data_quality",
    "explain_data_limitations",
]

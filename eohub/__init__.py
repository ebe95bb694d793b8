"""
EOHub - resolution-aware Earth observation data hub.
"""

from eohub.models import DataKind, DataResponse, Depth, RequestParams, ResponseOrigin

__all__ = ["DataKind", "DataResponse", "Depth", "RequestParams", "ResponseOrigin"]

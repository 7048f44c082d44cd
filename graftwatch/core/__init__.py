"""
GraftWatch - Core Utilities
Central configuration, logging, errors and geospatial helpers.
"""

from graftwatch.core.config import settings
from graftwatch.core.constants import (
    COLLECTION_REPORTS,
    COLLECTION_VOTES,
    COLLECTION_COMMENTS,
    COLLECTION_USERS,
    CORRUPTION_TYPES,
    VOTE_KINDS,
)
from graftwatch.core.exceptions import (
    GraftWatchError,
    PermissionDeniedError,
    NotFoundError,
    TransientStoreError,
    ReportValidationError,
    PartialWriteError,
)
from graftwatch.core.geo_utils import (
    haversine_distance,
    destination_point,
    BoundingBox,
)

__all__ = [
    "settings",
    "COLLECTION_REPORTS",
    "COLLECTION_VOTES",
    "COLLECTION_COMMENTS",
    "COLLECTION_USERS",
    "CORRUPTION_TYPES",
    "VOTE_KINDS",
    "GraftWatchError",
    "PermissionDeniedError",
    "NotFoundError",
    "TransientStoreError",
    "ReportValidationError",
    "PartialWriteError",
    "haversine_distance",
    "destination_point",
    "BoundingBox",
]

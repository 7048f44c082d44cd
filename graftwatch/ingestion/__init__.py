"""
GraftWatch - External lookups
"""

from graftwatch.ingestion.geocoding import ReverseGeocoder, format_coordinates

__all__ = [
    "ReverseGeocoder",
    "format_coordinates",
]

"""InfluxDB series query service.

This module provides:
- Flux query construction for latest-value lookups
- CSV result parsing into SeriesRow records
- Async HTTP client for the InfluxDB v2 query API
"""

from .client import InfluxClient
from .models import SeriesRow

__all__ = ["InfluxClient", "SeriesRow"]

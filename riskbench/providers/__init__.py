"""Raw data providers for the refresh pipeline.

This module contains providers for:
- HTTP data services (holders, liquidity, governance endpoints)
- Manual analyst files (YAML/JSON)
"""

from .base import BaseProvider, RawDataProvider
from .http_provider import HttpRawDataProvider
from .manual_provider import ManualDataProvider

__all__ = ["BaseProvider", "RawDataProvider", "HttpRawDataProvider", "ManualDataProvider"]

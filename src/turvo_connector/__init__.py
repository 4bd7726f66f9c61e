"""
Turvo Loads Connector

Adapter between a simplified Load model and the Turvo transportation
management API.

Features:
- OAuth token management with refresh and 429 cooldown
- Cursor pagination over shipment and customer lists
- Bounded concurrent enrichment of list pages
- Load <-> shipment mapping with sensible defaults

Quick Start:
    pip install turvo-loads-connector
    turvo-loads setup    # Interactive configuration
    turvo-loads test     # Verify connection
    turvo-loads list     # Show a page of loads
"""

from turvo_connector.auth import TokenManager
from turvo_connector.client import TurvoClient
from turvo_connector.config import TurvoConfig, load_config
from turvo_connector.domain import (
    Carrier,
    Load,
    Party,
    RateData,
    Specifications,
    Stop,
)
from turvo_connector.enrichment import ShipmentEnricher
from turvo_connector.exceptions import (
    TurvoAPIError,
    TurvoAuthError,
    TurvoConfigError,
    TurvoDecodeError,
    TurvoNotFoundError,
    TurvoRateLimitError,
    TurvoUnauthorizedError,
    TurvoUpstreamError,
)
from turvo_connector.mapper import LoadMapper
from turvo_connector.models import Customer, PageMeta, Shipment, ShipmentPage
from turvo_connector.service import LoadPage, LoadService

__version__ = "1.0.0"
__all__ = [
    # Service
    "LoadService",
    "LoadPage",

    # API client
    "TurvoClient",
    "TokenManager",
    "ShipmentEnricher",

    # Errors
    "TurvoAPIError",
    "TurvoAuthError",
    "TurvoConfigError",
    "TurvoDecodeError",
    "TurvoNotFoundError",
    "TurvoRateLimitError",
    "TurvoUnauthorizedError",
    "TurvoUpstreamError",

    # Config
    "TurvoConfig",
    "load_config",

    # Mapping
    "LoadMapper",

    # Wire models
    "Shipment",
    "Customer",
    "PageMeta",
    "ShipmentPage",

    # Domain models
    "Load",
    "Party",
    "Stop",
    "Carrier",
    "RateData",
    "Specifications",
]

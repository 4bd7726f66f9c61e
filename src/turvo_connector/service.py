"""
Load service: the surface a route layer consumes.

Wraps the client, enricher and mapper so handlers deal in Loads only.
Errors from the client propagate unchanged; TurvoRateLimitError in
particular should become a 429 with Retry-After at the edge.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import BaseModel, Field

from turvo_connector.client import TurvoClient
from turvo_connector.config import TurvoConfig
from turvo_connector.domain import Load
from turvo_connector.enrichment import ShipmentEnricher
from turvo_connector.mapper import LoadMapper
from turvo_connector.models import Customer, PageMeta

logger = structlog.get_logger(__name__)

# Query parameters forwarded to Turvo; anything else is dropped
SHIPMENT_FILTERS = (
    "createdDate[gte]",
    "lastUpdatedOn[lte]",
    "created[gte]",
    "updated[lte]",
    "customId[eq]",
    "status[eq]",
    "sortBy",
)
CUSTOMER_FILTERS = (
    "start",
    "pageSize",
    "name[eq]",
    "status[eq]",
    "updated[lte]",
    "created[gte]",
)

DEFAULT_PAGE_SIZE = 24
# Turvo rejects very wide created-date windows
DEFAULT_CREATED_WINDOW = timedelta(days=90)


class LoadPage(BaseModel):
    """One page of Loads plus the Turvo pagination it came from."""

    items: list[Load] = Field(default_factory=list)
    pagination: PageMeta = Field(default_factory=PageMeta)

    def to_dict(self) -> dict[str, Any]:
        """JSON body for a list response."""
        return {
            "items": [load.to_json_dict() for load in self.items],
            "pagination": {
                "start": self.pagination.start,
                "pageSize": self.pagination.page_size,
                "totalRecordsInPage": self.pagination.total_records_in_page,
                "moreAvailable": self.pagination.more_available,
            },
        }


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


class LoadService:
    """
    List, fetch, find and create Loads backed by Turvo shipments.

    Example:
        service = LoadService.from_config(load_config())
        page = service.list_loads({"status[eq]": "Tendered"})
    """

    def __init__(
        self,
        client: TurvoClient,
        mapper: LoadMapper | None = None,
        enricher: ShipmentEnricher | None = None,
    ):
        self.client = client
        self.mapper = mapper or LoadMapper(client.config)
        self.enricher = enricher or ShipmentEnricher(client)

    @classmethod
    def from_config(cls, config: TurvoConfig) -> "LoadService":
        return cls(TurvoClient(config))

    def build_shipment_query(
        self,
        filters: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """
        Whitelist filters for shipments/list.

        q becomes a customId[like] search. Without a created-date filter the
        query is limited to the last 90 days.
        """
        filters = filters or {}
        query = {key: filters[key] for key in SHIPMENT_FILTERS if filters.get(key)}

        if filters.get("q"):
            query["customId[like]"] = filters["q"]

        if not query.get("created[gte]") and not query.get("createdDate[gte]"):
            now = now or datetime.now(timezone.utc)
            since = now - DEFAULT_CREATED_WINDOW
            query["createdDate[gte]"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")

        return query

    def list_loads(
        self,
        filters: dict[str, str] | None = None,
        start: int | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
    ) -> LoadPage:
        """
        Get one page of Loads.

        start and page_size may also arrive as "start"/"pageSize" filter
        strings; explicit arguments win.
        """
        filters = filters or {}
        if start is None:
            start = _parse_int(filters.get("start") or 0, "start")
        if page_size is None:
            page_size = _parse_int(filters.get("pageSize") or DEFAULT_PAGE_SIZE, "pageSize")

        query = self.build_shipment_query(filters)
        started = time.monotonic()
        page = self.client.list_shipments_page(query, start=start, page_size=page_size, timeout=timeout)

        # Enrichment gets whatever is left of the caller's budget
        remaining = None
        if timeout is not None:
            remaining = max(0.0, timeout - (time.monotonic() - started))
        shipments = self.enricher.enrich(page.items, timeout=remaining)

        logger.info(
            "Listed loads",
            start=start,
            count=len(shipments),
            more_available=page.pagination.more_available,
        )
        return LoadPage(
            items=[self.mapper.from_wire(s) for s in shipments],
            pagination=page.pagination,
        )

    def get_load(self, load_id: int | str, timeout: float | None = None) -> Load:
        """Get a Load by Turvo shipment id."""
        return self.mapper.from_wire(self.client.get_shipment(load_id, timeout=timeout))

    def find_load_by_external_id(self, external_id: str, timeout: float | None = None) -> Load:
        """Find a Load by its external TMS id (scans every shipment page)."""
        shipment = self.client.find_shipment_by_external_id(external_id, timeout=timeout)
        return self.mapper.from_wire(shipment)

    def create_load(self, load: Load, timeout: float | None = None) -> Load:
        """Create a Load in Turvo and return it as Turvo stored it."""
        shipment = self.mapper.to_wire(load)
        created = self.client.create_shipment(shipment, timeout=timeout)
        return self.mapper.from_wire(created)

    def list_customers(
        self,
        filters: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> list[Customer]:
        """List customers for dropdowns, forwarding only known filters."""
        filters = filters or {}
        query = {key: filters[key] for key in CUSTOMER_FILTERS if filters.get(key)}
        return self.client.list_customers(query, timeout=timeout)

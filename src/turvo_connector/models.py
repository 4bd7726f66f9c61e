"""
Pydantic models for Turvo API payloads.

Field names follow Turvo's camelCase wire format through aliases. Parsed
records are frozen: they are read-only snapshots of what the provider sent.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class TurvoModel(BaseModel):
    """Base for wire models: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    @field_validator("*", mode="before")
    @classmethod
    def null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        """Turvo sends null for absent values; treat it as the field default."""
        if v is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON shape Turvo expects."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class KeyValuePair(TurvoModel):
    """Turvo enum value, e.g. {"key": "1500", "value": "Pickup"}."""

    key: str = ""
    value: str = ""


class Lane(TurvoModel):
    """Human-readable "city, state" origin and destination."""

    start: str = ""
    end: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.start and not self.end


class DateWithTZ(TurvoModel):
    date: datetime | None = None
    time_zone: str | None = None


class Location(TurvoModel):
    id: int = 0


class Appointment(TurvoModel):
    date: datetime | None = None
    flex: int = 0
    timezone: str | None = None
    has_time: bool = False


class GlobalRoute(TurvoModel):
    """A stop in the shipment's route."""

    name: str | None = None
    stop_type: KeyValuePair = Field(default_factory=KeyValuePair)
    location: Location = Field(default_factory=Location)
    sequence: int = 0
    timezone: str | None = None
    appointment: Appointment | None = None
    notes: str | None = None


class Equipment(TurvoModel):
    type: KeyValuePair = Field(default_factory=KeyValuePair)
    weight: float | None = None
    weight_units: KeyValuePair | None = None
    temp: float | None = None
    temp_units: KeyValuePair | None = None
    description: str | None = None


class CustomerRef(TurvoModel):
    id: int = 0
    name: str | None = None


class CustomerOrder(TurvoModel):
    """Links a customer to the shipment."""

    id: int | None = None
    deleted: bool | None = None
    customer: CustomerRef | None = None
    customer_id: int | None = None
    customer_order_source_id: int | None = None
    total_miles: float | None = None


class CarrierOrder(TurvoModel):
    carrier_id: int = 0
    carrier_order_source_id: int = 0


class Margin(TurvoModel):
    min_pay: float | None = None
    max_pay: float | None = None
    amount: float | None = None
    value: float | None = None


class Transportation(TurvoModel):
    mode: KeyValuePair | None = None
    service_type: KeyValuePair | None = None


def extract_status_value(raw: Any) -> str | None:
    """
    Best-effort status string from Turvo's loosely typed status value.

    Handles {"code": {"key": .., "value": ..}} objects and plain strings;
    anything else yields None.
    """
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, dict):
        code = raw.get("code")
        if isinstance(code, dict):
            value = code.get("value")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class Shipment(TurvoModel):
    """Turvo shipment: the wire form of a Load."""

    id: int | None = None
    custom_id: str = ""
    ltl_shipment: bool = False
    start_date: DateWithTZ | None = None
    end_date: DateWithTZ | None = None
    created_date: datetime | None = None
    updated: datetime | None = None
    last_updated_on: datetime | None = None

    # Turvo sends status in several shapes; decoded lazily via status_code
    status: Any = None

    equipment: list[Equipment] | None = None
    lane: Lane | None = None
    global_route: list[GlobalRoute] | None = None
    skip_distance_calculation: bool | None = None
    customer_order: list[CustomerOrder] = Field(default_factory=list)
    carrier_order: list[CarrierOrder] | None = None
    margin: Margin | None = None
    services: list[KeyValuePair] | None = None
    phase: KeyValuePair | None = None
    transportation: Transportation | None = None
    use_routing_guide: bool | None = Field(None, alias="use_routing_guide")

    @property
    def has_identity(self) -> bool:
        """True when the record carries a Turvo id or custom id."""
        return bool(self.id) or bool(self.custom_id)

    @property
    def needs_lane(self) -> bool:
        """True for list summaries that came back without a lane."""
        return self.lane is None or self.lane.is_empty

    @property
    def status_code(self) -> str | None:
        return extract_status_value(self.status)

    @property
    def primary_customer(self) -> CustomerRef | None:
        if self.customer_order and self.customer_order[0].customer is not None:
            return self.customer_order[0].customer
        return None


class Customer(TurvoModel):
    """Minimal customer projection used for dropdowns."""

    id: int = 0
    name: str = ""


# API Response wrappers


class PageMeta(TurvoModel):
    """Pagination block returned by Turvo list endpoints."""

    start: int = 0
    page_size: int = 0
    total_records_in_page: int = 0
    more_available: bool = False
    last_object_key: Any = None

    @property
    def next_start(self) -> int | None:
        """Cursor for the next page, or None on the last page."""
        if not self.more_available:
            return None
        return self.start + self.total_records_in_page


class ShipmentListDetails(TurvoModel):
    shipments: list[Shipment] | None = None
    pagination: PageMeta = Field(default_factory=PageMeta)


class ShipmentListEnvelope(TurvoModel):
    """Response from GET shipments/list in enveloped form."""

    status: Any = Field(None, alias="Status")
    details: ShipmentListDetails | None = None


class ShipmentDetails(TurvoModel):
    shipment: Shipment | None = None
    shipments: list[Shipment] | None = None


class ShipmentEnvelope(TurvoModel):
    """Response from GET shipments/:id in enveloped form."""

    status: Any = Field(None, alias="Status")
    details: ShipmentDetails | None = None


class CustomerListDetails(TurvoModel):
    customers: list[Customer] | None = None
    pagination: PageMeta = Field(default_factory=PageMeta)


class CustomerListEnvelope(TurvoModel):
    """Response from GET customers/list in enveloped form."""

    status: Any = Field(None, alias="Status")
    details: CustomerListDetails | None = None


class ShipmentPage(BaseModel):
    """
    One decoded page of shipments.

    shape records which response form the page was decoded from.
    """

    items: list[Shipment] = Field(default_factory=list)
    pagination: PageMeta = Field(default_factory=PageMeta)
    shape: Literal["enveloped", "bare"] = "enveloped"


class CustomerPage(BaseModel):
    items: list[Customer] = Field(default_factory=list)
    pagination: PageMeta = Field(default_factory=PageMeta)
    shape: Literal["enveloped", "bare"] = "enveloped"

"""
Domain models for Loads.

These are the shapes the rest of the application works with. JSON field
names (via aliases) match the Load schema consumed by the UI.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Party(DomainModel):
    """A customer or bill-to party."""

    external_tms_id: str | None = Field(None, alias="externalTMSId")
    # Turvo customer id; overrides the configured default customer on create
    turvo_id: int | None = None
    name: str = ""
    address_line1: str = ""
    address_line2: str | None = None
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: str = ""
    contact: str | None = None
    phone: str | None = None
    email: str | None = None
    ref_number: str | None = None


class Stop(DomainModel):
    """A pickup or consignee location."""

    name: str = ""
    address_line1: str = ""
    address_line2: str | None = None
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: str = ""
    ready_time: datetime | None = None
    appt_time: datetime | None = None
    must_deliver: datetime | None = None
    timezone: str | None = None
    warehouse_id: str | None = None
    contact: str | None = None
    notes: str | None = None

    @property
    def lane_label(self) -> str:
        """Lane label like "Chicago, IL"; blank parts are dropped."""
        parts = [p.strip() for p in (self.city, self.state) if p and p.strip()]
        return ", ".join(parts)


class Carrier(DomainModel):
    mc_number: str | None = None
    dot_number: str | None = None
    name: str | None = None
    scac: str | None = None
    dispatcher: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    truck_id: str | None = None
    trailer_id: str | None = None


class RateData(DomainModel):
    """Pricing and rate information."""

    customer_rate: float | None = None
    carrier_rate: float | None = None
    linehaul_rate: float | None = None
    fuel_surcharge: float | None = None
    detention_hours: float | None = None
    max_rate: float | None = None
    projected_profit: float | None = None


class Specifications(DomainModel):
    """Special requirements for the load."""

    hazmat: bool | None = None
    liftgate_pickup: bool | None = None
    liftgate_delivery: bool | None = None
    inside_delivery: bool | None = None
    oversize: bool | None = None
    tarps: bool | None = None
    permits: bool | None = None
    escorts: bool | None = None
    temp_min: int | None = None
    temp_max: int | None = None
    temp_unit: str | None = None


class Load(DomainModel):
    """A Load as seen by the application."""

    external_tms_load_id: str = Field("", alias="externalTMSLoadID")
    freight_load_id: str | None = Field(None, alias="freightLoadID")
    turvo_shipment_id: int | None = None
    status: str = ""
    customer: Party = Field(default_factory=Party)
    bill_to: Party | None = None
    pickup: Stop = Field(default_factory=Stop)
    consignee: Stop = Field(default_factory=Stop)
    carrier: Carrier | None = None
    rate_data: RateData | None = None
    specifications: Specifications = Field(default_factory=Specifications)
    in_pallet_count: int | None = None
    total_weight: float | None = None
    created_at: datetime | None = None

    # Display fields, only set when Turvo provides them
    phase: str | None = None
    mode: str | None = None
    service_type: str | None = None
    services: list[str] | None = None
    equipment: list[str] | None = None
    customer_total_miles: float | None = None
    margin_amount: float | None = None
    margin_value: float | None = None

"""
Translation between Loads and Turvo shipments.

to_wire() builds a create payload, filling the dates and customer Turvo
requires. from_wire() produces a display-oriented Load and never invents
values: optional fields stay None when Turvo did not send them.
"""

from datetime import datetime, timedelta, timezone

from turvo_connector.config import TurvoConfig
from turvo_connector.domain import Load, Party, Stop
from turvo_connector.models import (
    Appointment,
    CustomerOrder,
    CustomerRef,
    DateWithTZ,
    GlobalRoute,
    KeyValuePair,
    Lane,
    Location,
    Shipment,
)

DEFAULT_TRANSIT = timedelta(hours=24)
UNKNOWN_STATUS = "Unknown"

# Turvo stop type codes
STOP_TYPE_PICKUP = KeyValuePair(key="1500", value="Pickup")
STOP_TYPE_DELIVERY = KeyValuePair(key="1501", value="Delivery")


def parse_lane(value: str | None) -> tuple[str, str]:
    """
    Split a "city, state" lane string on the first comma.

    "Chicago, IL" -> ("Chicago", "IL"); "Chicago" -> ("Chicago", "").
    """
    value = (value or "").strip()
    if not value:
        return "", ""
    city, _, state = value.partition(",")
    return city.strip(), state.strip()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LoadMapper:
    """Converts between Load and Shipment using configured defaults."""

    def __init__(self, config: TurvoConfig):
        self.config = config

    def to_wire(self, load: Load, now: datetime | None = None) -> Shipment:
        """
        Build a Turvo shipment from a Load.

        Missing pickup time falls back to now, missing delivery time to
        pickup + 24h. The load's own Turvo customer id wins over the
        configured default.
        """
        now = now or datetime.now(timezone.utc)

        pickup_at = _as_utc(load.pickup.ready_time) if load.pickup.ready_time else now
        if load.consignee.must_deliver:
            delivery_at = _as_utc(load.consignee.must_deliver)
        else:
            delivery_at = pickup_at + DEFAULT_TRANSIT

        customer_id = self.config.default_customer_id
        if load.customer.turvo_id and load.customer.turvo_id > 0:
            customer_id = load.customer.turvo_id

        start_lane = load.pickup.lane_label
        end_lane = load.consignee.lane_label
        lane = Lane(start=start_lane, end=end_lane) if start_lane or end_lane else None

        global_route = None
        if lane is None:
            global_route = self._default_route(load, pickup_at, delivery_at)

        return Shipment(
            custom_id=load.external_tms_load_id,
            ltl_shipment=False,
            start_date=DateWithTZ(date=pickup_at, time_zone="UTC"),
            end_date=DateWithTZ(date=delivery_at, time_zone="UTC"),
            customer_order=[
                CustomerOrder(
                    customer=CustomerRef(id=customer_id),
                    customer_order_source_id=1,
                )
            ],
            lane=lane,
            # Turvo recalculates distance from the route unless told not to
            skip_distance_calculation=True if lane is not None else None,
            global_route=global_route,
        )

    def _default_route(
        self,
        load: Load,
        pickup_at: datetime,
        delivery_at: datetime,
    ) -> list[GlobalRoute] | None:
        """Two-stop route on the configured default locations, if both are set."""
        origin_id = self.config.default_origin_location_id
        destination_id = self.config.default_destination_location_id
        if origin_id <= 0 or destination_id <= 0:
            return None

        return [
            GlobalRoute(
                name=load.pickup.name or None,
                stop_type=STOP_TYPE_PICKUP,
                location=Location(id=origin_id),
                sequence=0,
                timezone="UTC",
                appointment=Appointment(date=pickup_at, timezone="UTC", has_time=True),
            ),
            GlobalRoute(
                name=load.consignee.name or None,
                stop_type=STOP_TYPE_DELIVERY,
                location=Location(id=destination_id),
                sequence=1,
                timezone="UTC",
                appointment=Appointment(date=delivery_at, timezone="UTC", has_time=True),
            ),
        ]

    def from_wire(self, shipment: Shipment) -> Load:
        """Convert a Turvo shipment into a Load for display."""
        customer_ref = shipment.primary_customer
        customer = Party()
        if customer_ref is not None:
            customer = Party(
                name=customer_ref.name or "",
                turvo_id=customer_ref.id or None,
            )

        pickup = Stop()
        consignee = Stop()
        if shipment.lane is not None:
            pickup_city, pickup_state = parse_lane(shipment.lane.start)
            delivery_city, delivery_state = parse_lane(shipment.lane.end)
            pickup = Stop(city=pickup_city, state=pickup_state)
            consignee = Stop(city=delivery_city, state=delivery_state)

        if shipment.start_date is not None and shipment.start_date.date is not None:
            pickup.ready_time = shipment.start_date.date
        if shipment.end_date is not None and shipment.end_date.date is not None:
            consignee.must_deliver = shipment.end_date.date

        load = Load(
            external_tms_load_id=shipment.custom_id,
            turvo_shipment_id=shipment.id or None,
            status=shipment.status_code or UNKNOWN_STATUS,
            created_at=shipment.created_date,
            customer=customer,
            pickup=pickup,
            consignee=consignee,
        )

        if shipment.phase is not None and shipment.phase.value:
            load.phase = shipment.phase.value

        transportation = shipment.transportation
        if transportation is not None:
            if transportation.mode is not None and transportation.mode.value:
                load.mode = transportation.mode.value
            if transportation.service_type is not None and transportation.service_type.value:
                load.service_type = transportation.service_type.value

        if shipment.services:
            services = [kv.value for kv in shipment.services if kv.value]
            if services:
                load.services = services

        if shipment.equipment:
            equipment = [e.type.value for e in shipment.equipment if e.type.value]
            if equipment:
                load.equipment = equipment

        if shipment.customer_order:
            total_miles = shipment.customer_order[0].total_miles
            if total_miles:
                load.customer_total_miles = total_miles

        if shipment.margin is not None:
            if shipment.margin.amount:
                load.margin_amount = shipment.margin.amount
            if shipment.margin.value:
                load.margin_value = shipment.margin.value

        return load

"""
Tests for concurrent shipment enrichment.
"""

import threading
import time

import httpx
import pytest

from turvo_connector.enrichment import ShipmentEnricher
from turvo_connector.models import Shipment

from conftest import respond


def _summary(shipment_id: int, lane: dict | None = None) -> Shipment:
    data = {"id": shipment_id, "customId": f"PO-{shipment_id}"}
    if lane is not None:
        data["lane"] = lane
    return Shipment.model_validate(data)


def _detail(shipment_id: int, start: str, end: str) -> dict:
    return {
        "id": shipment_id,
        "customId": f"PO-{shipment_id}",
        "lane": {"start": start, "end": end},
    }


@pytest.fixture
def page():
    """Five summaries; indices 1 and 3 have no lane."""
    return [
        _summary(10, {"start": "Austin, TX", "end": "Dallas, TX"}),
        _summary(11),
        _summary(12, {"start": "Reno, NV", "end": "Boise, ID"}),
        _summary(13, {"start": "", "end": ""}),
        _summary(14, {"start": "Tulsa, OK", "end": "Omaha, NE"}),
    ]


class TestShipmentEnricher:
    """Tests for ShipmentEnricher."""

    def test_preserves_order(self, client, stub, page):
        """Test results merge back by index even when fetches finish out of order."""
        def slow_detail(request):
            time.sleep(0.1)
            return httpx.Response(200, json=_detail(11, "Chicago, IL", "Detroit, MI"))

        stub.add("/v1/shipments/11", slow_detail)
        stub.add("/v1/shipments/13", respond(200, json=_detail(13, "Denver, CO", "Provo, UT")))

        result = ShipmentEnricher(client).enrich(page)

        assert [s.id for s in result] == [10, 11, 12, 13, 14]
        assert result[1].lane.start == "Chicago, IL"
        assert result[3].lane.end == "Provo, UT"
        assert result[0] is page[0]
        assert result[2] is page[2]
        assert result[4] is page[4]

    def test_only_laneless_records_fetched(self, client, stub, page):
        stub.add("/v1/shipments/11", respond(200, json=_detail(11, "A, B", "C, D")))
        stub.add("/v1/shipments/13", respond(200, json=_detail(13, "E, F", "G, H")))

        ShipmentEnricher(client).enrich(page)

        fetched = sorted(r.url.path for r in stub.requests if r.url.path.startswith("/v1/shipments/"))
        assert fetched == ["/v1/shipments/11", "/v1/shipments/13"]

    def test_partial_failure_keeps_summary(self, client, stub, page):
        """Test a failed fetch leaves that record as the summary."""
        stub.add("/v1/shipments/11", respond(200, json=_detail(11, "Chicago, IL", "Detroit, MI")))
        stub.add("/v1/shipments/13", respond(500, text="boom"))

        result = ShipmentEnricher(client).enrich(page)

        assert len(result) == 5
        assert result[1].lane.start == "Chicago, IL"
        assert result[3] is page[3]

    def test_nothing_to_enrich(self, client, stub):
        shipments = [_summary(1, {"start": "A, B", "end": "C, D"})]

        result = ShipmentEnricher(client).enrich(shipments)

        assert result == shipments
        assert result is not shipments
        assert stub.requests == []

    def test_records_without_id_skipped(self, client, stub):
        shipments = [Shipment(custom_id="PO-NOID")]

        result = ShipmentEnricher(client).enrich(shipments)

        assert result[0] is shipments[0]
        assert stub.requests == []

    def test_bounded_concurrency(self, client, stub):
        """Test no more than max_workers fetches are in flight at once."""
        lock = threading.Lock()
        in_flight = 0
        peak = 0

        def tracked(request):
            nonlocal in_flight, peak
            with lock:
                in_flight += 1
                peak = max(peak, in_flight)
            time.sleep(0.05)
            with lock:
                in_flight -= 1
            shipment_id = int(request.url.path.rsplit("/", 1)[-1])
            return httpx.Response(200, json=_detail(shipment_id, "A, B", "C, D"))

        shipments = [_summary(i) for i in range(1, 11)]
        for i in range(1, 11):
            stub.add(f"/v1/shipments/{i}", tracked)
        client.tokens.ensure_token()

        result = ShipmentEnricher(client, max_workers=3).enrich(shipments)

        assert all(s.lane is not None for s in result)
        assert peak <= 3

    def test_fetch_timeout_capped_by_caller(self, client, stub, page):
        stub.add("/v1/shipments/11", respond(200, json=_detail(11, "A, B", "C, D")))
        stub.add("/v1/shipments/13", respond(200, json=_detail(13, "E, F", "G, H")))

        ShipmentEnricher(client, fetch_timeout=15.0).enrich(page, timeout=5.0)

        for request in stub.calls("/v1/shipments/11") + stub.calls("/v1/shipments/13"):
            assert request.extensions["timeout"]["read"] == 5.0

    def test_default_fetch_timeout(self, client, stub, page):
        stub.add("/v1/shipments/11", respond(200, json=_detail(11, "A, B", "C, D")))
        stub.add("/v1/shipments/13", respond(200, json=_detail(13, "E, F", "G, H")))

        ShipmentEnricher(client).enrich(page)

        (request,) = stub.calls("/v1/shipments/11")
        assert request.extensions["timeout"]["read"] == 15.0

    def test_caller_deadline_leaves_slow_records(self, client, stub, page):
        """Test fetches still running at the deadline keep their summary."""
        def very_slow(request):
            time.sleep(0.5)
            return httpx.Response(200, json=_detail(11, "Late, LA", "Later, LA"))

        stub.add("/v1/shipments/11", very_slow)
        stub.add("/v1/shipments/13", respond(200, json=_detail(13, "E, F", "G, H")))
        client.tokens.ensure_token()

        result = ShipmentEnricher(client).enrich(page, timeout=0.2)

        assert result[1] is page[1]
        assert result[3].lane.start == "E, F"

    def test_invalid_worker_count(self, client):
        with pytest.raises(ValueError):
            ShipmentEnricher(client, max_workers=0)

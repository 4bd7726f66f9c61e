"""
Detail fan-out for shipment list pages.

Turvo list summaries often come back without a lane. For those records the
full shipment is fetched concurrently, with a fixed worker ceiling so a page
of 50 summaries does not turn into 50 simultaneous requests. Enrichment is
best effort: a failed fetch leaves the summary record in place.
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait

import httpx
import structlog

from turvo_connector.client import TurvoClient
from turvo_connector.exceptions import TurvoAPIError
from turvo_connector.models import Shipment

logger = structlog.get_logger(__name__)

DEFAULT_MAX_WORKERS = 6
DEFAULT_FETCH_TIMEOUT = 15.0


class ShipmentEnricher:
    """
    Replaces lane-less summaries with full shipment records.

    Example:
        enricher = ShipmentEnricher(client)
        page = client.list_shipments_page(page_size=24)
        shipments = enricher.enrich(page.items)
    """

    def __init__(
        self,
        client: TurvoClient,
        max_workers: int = DEFAULT_MAX_WORKERS,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.client = client
        self.max_workers = max_workers
        self.fetch_timeout = fetch_timeout

    def enrich(self, shipments: list[Shipment], timeout: float | None = None) -> list[Shipment]:
        """
        Return shipments with summaries swapped for detail records.

        Args:
            shipments: One page of list results, in display order
            timeout: Caller's overall budget in seconds. Each fetch gets
                min(fetch_timeout, timeout); fetches still pending when the
                budget runs out leave their record as-is.

        Returns:
            A new list in the same order as shipments
        """
        enriched = list(shipments)
        pending = [
            (index, shipment)
            for index, shipment in enumerate(shipments)
            if shipment.needs_lane and shipment.id
        ]
        if not pending:
            return enriched

        fetch_timeout = self.fetch_timeout if timeout is None else min(self.fetch_timeout, timeout)
        log = logger.bind(pending=len(pending), total=len(shipments))
        log.debug("Enriching shipments")

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(pending)),
            thread_name_prefix="turvo-enrich",
        )
        try:
            futures: dict[Future, int] = {
                executor.submit(self.client.get_shipment, shipment.id, timeout=fetch_timeout): index
                for index, shipment in pending
            }
            done, not_done = wait(futures, timeout=timeout)

            for future in done:
                index = futures[future]
                try:
                    enriched[index] = future.result()
                except (TurvoAPIError, httpx.HTTPError) as e:
                    log.warning(
                        "Shipment enrichment failed",
                        shipment_id=shipments[index].id,
                        error=str(e),
                    )

            for future in not_done:
                future.cancel()
                log.warning(
                    "Shipment enrichment timed out",
                    shipment_id=shipments[futures[future]].id,
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return enriched

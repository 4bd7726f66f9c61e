"""
Turvo API Client

Synchronous HTTP client with:
- OAuth token management (password and refresh grants, 429 cooldown)
- Single forced-refresh retry on 401, nothing else retried
- Rate limits surfaced to the caller with their retry-after value
- Dual-shape response decoding (Turvo envelope vs bare payloads)
- Pagination helpers over start/pageSize cursors
- Request/response logging
"""

import time
from typing import Any, Iterator, TypeVar

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from turvo_connector.auth import TokenManager, parse_retry_after
from turvo_connector.config import TurvoConfig
from turvo_connector.exceptions import (
    TurvoAPIError,
    TurvoConfigError,
    TurvoDecodeError,
    TurvoNotFoundError,
    TurvoRateLimitError,
    TurvoUnauthorizedError,
    TurvoUpstreamError,
)
from turvo_connector.models import (
    Customer,
    CustomerListEnvelope,
    CustomerPage,
    PageMeta,
    Shipment,
    ShipmentEnvelope,
    ShipmentListEnvelope,
    ShipmentPage,
)

logger = structlog.get_logger(__name__)

USER_AGENT = "turvo-loads-connector/1.0"

# Resource error bodies are truncated to this size
MAX_ERROR_BODY = 500

# Exhaustive scans stop after this many pages
SCAN_PAGE_SIZE = 100
SCAN_MAX_PAGES = 100

M = TypeVar("M", bound=BaseModel)

_shipment_list = TypeAdapter(list[Shipment])
_customer_list = TypeAdapter(list[Customer])


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------

def _try_validate(model: type[M], data: Any) -> M | None:
    try:
        return model.model_validate(data)
    except ValidationError:
        return None


def _try_validate_list(adapter: TypeAdapter, data: Any) -> list | None:
    if not isinstance(data, list):
        return None
    try:
        return adapter.validate_python(data)
    except ValidationError:
        return None


def _synthesized_meta(start: int, count: int) -> PageMeta:
    return PageMeta(
        start=start,
        page_size=count,
        total_records_in_page=count,
        more_available=False,
    )


def decode_shipment_page(data: Any, start: int = 0) -> ShipmentPage:
    """
    Decode a shipments/list body.

    The envelope {Status, details: {shipments, pagination}} is tried first;
    when it does not yield items, a bare array is tried and its pagination
    synthesized. An envelope with an explicitly empty list is an empty page.
    """
    envelope = _try_validate(ShipmentListEnvelope, data)
    details = envelope.details if envelope else None

    if details is not None and details.shipments:
        return ShipmentPage(
            items=details.shipments,
            pagination=details.pagination,
            shape="enveloped",
        )

    items = _try_validate_list(_shipment_list, data)
    if items is not None:
        return ShipmentPage(
            items=items,
            pagination=_synthesized_meta(start, len(items)),
            shape="bare",
        )

    if details is not None and details.shipments is not None:
        return ShipmentPage(items=[], pagination=details.pagination, shape="enveloped")

    raise TurvoDecodeError(
        "Shipment list response matched neither envelope nor array shape",
        response_body=str(data)[:MAX_ERROR_BODY],
    )


def decode_customer_page(data: Any, start: int = 0) -> CustomerPage:
    """Decode a customers/list body; same strategy as decode_shipment_page."""
    envelope = _try_validate(CustomerListEnvelope, data)
    details = envelope.details if envelope else None

    if details is not None and details.customers:
        return CustomerPage(
            items=details.customers,
            pagination=details.pagination,
            shape="enveloped",
        )

    items = _try_validate_list(_customer_list, data)
    if items is not None:
        return CustomerPage(
            items=items,
            pagination=_synthesized_meta(start, len(items)),
            shape="bare",
        )

    if details is not None and details.customers is not None:
        return CustomerPage(items=[], pagination=details.pagination, shape="enveloped")

    raise TurvoDecodeError(
        "Customer list response matched neither envelope nor array shape",
        response_body=str(data)[:MAX_ERROR_BODY],
    )


def _bare_shipment(data: dict[str, Any]) -> Shipment | None:
    shipment = _try_validate(Shipment, data)
    if shipment is not None and shipment.has_identity:
        return shipment
    return None


def _enveloped_shipment(data: dict[str, Any]) -> Shipment | None:
    details = data.get("details")
    if not isinstance(details, dict):
        return None

    # {details: {shipment: {...}}} or {details: {shipments: [...]}}
    envelope = _try_validate(ShipmentEnvelope, data)
    if envelope is not None and envelope.details is not None:
        if envelope.details.shipment is not None:
            return envelope.details.shipment
        if envelope.details.shipments:
            return envelope.details.shipments[0]

    # {details: {...record...}}
    return _bare_shipment(details)


def decode_shipment_record(data: Any, envelope_first: bool = False) -> Shipment | None:
    """
    Decode a single-shipment body, or return None when no shape matches.

    Detail responses are usually bare, create responses usually enveloped;
    envelope_first picks which shape is tried first.
    """
    if not isinstance(data, dict):
        return None

    attempts = [_bare_shipment, _enveloped_shipment]
    if envelope_first:
        attempts.reverse()

    for attempt in attempts:
        shipment = attempt(data)
        if shipment is not None:
            return shipment
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TurvoClient:
    """
    Turvo public API client.

    Features:
    - Synchronous and thread-safe; one instance serves concurrent requests
    - Token acquisition/refresh serialized behind one lock
    - One forced-refresh retry on 401
    - Rate limits raised as TurvoRateLimitError, never silently retried
    - Structured logging for observability

    Example:
        client = TurvoClient(TurvoConfig.from_env())

        with client:
            page = client.list_shipments_page(page_size=25)
            for shipment in page.items:
                print(shipment.custom_id)
    """

    PUBLIC_API_HOST_MARKER = "publicapi."

    def __init__(
        self,
        config: TurvoConfig,
        http_client: httpx.Client | None = None,
        token_manager: TokenManager | None = None,
    ):
        """
        Initialize the client.

        Args:
            config: Connection settings and credentials
            http_client: Pre-built httpx client (tests inject a MockTransport)
            token_manager: Pre-built token manager sharing http_client
        """
        if not config.has_credentials:
            raise TurvoConfigError(
                "Turvo credentials missing: set TURVO_USERNAME/TURVO_PASSWORD or TURVO_API_KEY"
            )

        self.config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            timeout=config.timeout,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            headers={"User-Agent": USER_AGENT},
        )
        self.tokens = token_manager or TokenManager(config, self._http)

        # Request counters for observability
        self._request_count = 0
        self._error_count = 0

        self._log = logger.bind(base_url=config.base_url)

    def __enter__(self) -> "TurvoClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            self._http.close()

    # -------------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------------

    def build_url(self, path: str) -> str:
        """
        Resolve a resource path against the configured base URL.

        With a bearer token the full API lives under /v1. Without one (API key
        only) the publicapi host serves the restricted /public/v1 tier.
        """
        base = self.config.base_url.rstrip("/")
        prefix = self.config.api_prefix.strip("/")

        if self.tokens.access_token:
            prefix = "v1"
        elif self.PUBLIC_API_HOST_MARKER in base and prefix == "v1":
            prefix = "public/v1"

        url = base
        if prefix and not base.endswith(prefix):
            url += "/" + prefix
        return url + "/" + path.lstrip("/")

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.tokens.access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        if self.config.tenant:
            headers["Tenant"] = self.config.tenant
        return headers

    def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make an authenticated request to the Turvo API.

        A 401 triggers one forced token refresh and one retry. Every other
        failure is raised to the caller.
        """
        log = self._log.bind(endpoint=path, method=method)
        sent_token = ""
        request_timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

        def _refresh_after_401(retry_state: RetryCallState) -> None:
            log.info("Turvo returned 401, forcing token refresh")
            self.tokens.ensure_token(
                use_refresh=True,
                timeout=timeout,
                rejected_token=sent_token,
            )

        @retry(
            retry=retry_if_exception_type(TurvoUnauthorizedError),
            stop=stop_after_attempt(2),
            before_sleep=_refresh_after_401,
            reraise=True,
        )
        def _do_request() -> httpx.Response:
            nonlocal sent_token

            self.tokens.ensure_token(timeout=timeout)

            url = self.build_url(path)
            headers = self._build_headers()
            sent_token = self.tokens.access_token

            self._request_count += 1
            request_id = self._request_count

            log.debug("API request", request_id=request_id, url=url)

            start_time = time.monotonic()
            response = self._http.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=request_timeout,
            )
            elapsed = time.monotonic() - start_time

            log.debug(
                "API response",
                request_id=request_id,
                status_code=response.status_code,
                elapsed_ms=round(elapsed * 1000),
            )

            if response.is_success:
                return response

            self._error_count += 1
            body = response.text[:MAX_ERROR_BODY]

            if response.status_code == 401:
                raise TurvoUnauthorizedError(
                    f"Unauthorized: {method} {path}",
                    status_code=401,
                    response_body=body,
                )

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                log.warning("Turvo rate limited", retry_after=retry_after)
                raise TurvoRateLimitError(
                    f"Rate limited: {method} {path}",
                    retry_after=retry_after,
                    response_body=body,
                )

            if response.status_code == 404:
                raise TurvoNotFoundError(
                    f"Resource not found: {path}",
                    status_code=404,
                    response_body=body,
                )

            log.warning("Turvo request failed", status_code=response.status_code, body=body)
            raise TurvoUpstreamError(
                f"Turvo error on {method} {path}: {body}",
                status_code=response.status_code,
                response_body=body,
            )

        return _do_request()

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TurvoDecodeError(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
                response_body=response.text[:MAX_ERROR_BODY],
            ) from e

    # -------------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------------

    def list_shipments_page(
        self,
        filters: dict[str, str] | None = None,
        start: int = 0,
        page_size: int = 50,
        timeout: float | None = None,
    ) -> ShipmentPage:
        """
        Get one page of shipments.

        Args:
            filters: Turvo query filters, e.g. {"status[eq]": "Tendered"}
            start: Cursor; use pagination.next_start for the following page
            page_size: Records per page
            timeout: Per-call timeout in seconds
        """
        params: dict[str, Any] = dict(filters or {})
        params["start"] = start
        params["pageSize"] = page_size

        response = self._make_request("GET", "shipments/list", params=params, timeout=timeout)
        page = decode_shipment_page(self._json(response), start=start)

        self._log.debug(
            "Fetched shipments page",
            start=page.pagination.start,
            count=len(page.items),
            more_available=page.pagination.more_available,
            shape=page.shape,
        )
        return page

    def iter_all_shipments(
        self,
        filters: dict[str, str] | None = None,
        page_size: int = SCAN_PAGE_SIZE,
        max_pages: int = SCAN_MAX_PAGES,
        timeout: float | None = None,
    ) -> Iterator[Shipment]:
        """
        Iterate through all shipments, page by page.

        Stops when Turvo reports no more records, when the cursor stops
        advancing, or after max_pages pages. A page error ends the iteration
        with that error.
        """
        start = 0

        for page_number in range(max_pages):
            page = self.list_shipments_page(filters, start=start, page_size=page_size, timeout=timeout)

            yield from page.items

            self._log.info(
                "Fetched shipments page",
                page=page_number + 1,
                start=start,
                count=len(page.items),
            )

            if not page.pagination.more_available:
                return

            increment = page.pagination.total_records_in_page or len(page.items)
            if increment <= 0:
                return
            start += increment

        self._log.warning("Stopped paging shipments at page ceiling", max_pages=max_pages)

    def get_shipment(self, shipment_id: int | str, timeout: float | None = None) -> Shipment:
        """Get a single shipment by Turvo id."""
        response = self._make_request("GET", f"shipments/{shipment_id}", timeout=timeout)
        data = self._json(response)

        if not isinstance(data, dict):
            raise TurvoDecodeError(
                f"Unexpected shipment response for {shipment_id}",
                response_body=response.text[:MAX_ERROR_BODY],
            )

        shipment = decode_shipment_record(data)
        if shipment is None:
            raise TurvoNotFoundError(f"Empty shipment response for {shipment_id}")
        return shipment

    def find_shipment_by_external_id(
        self,
        external_id: str,
        page_size: int = SCAN_PAGE_SIZE,
        max_pages: int = SCAN_MAX_PAGES,
        timeout: float | None = None,
    ) -> Shipment:
        """
        Find a shipment whose customId equals external_id.

        Turvo has no exact-match lookup for customId, so this scans the
        shipment list page by page: O(n) requests over the whole dataset.
        timeout applies to each page request.
        """
        scanned = 0
        for shipment in self.iter_all_shipments(page_size=page_size, max_pages=max_pages, timeout=timeout):
            scanned += 1
            if shipment.custom_id == external_id:
                self._log.info("Found shipment by external id", external_id=external_id, scanned=scanned)
                return shipment

        self._log.info("No shipment for external id", external_id=external_id, scanned=scanned)
        raise TurvoNotFoundError(f"Shipment not found for external id {external_id}")

    def create_shipment(self, shipment: Shipment, timeout: float | None = None) -> Shipment:
        """Create a shipment and return Turvo's view of it."""
        payload = shipment.to_payload()
        self._log.debug("Turvo create payload", custom_id=shipment.custom_id)

        response = self._make_request(
            "POST",
            "shipments",
            params={"fullResponse": "true"},
            json_body=payload,
            timeout=timeout,
        )

        created = decode_shipment_record(self._json(response), envelope_first=True)
        if created is None:
            raise TurvoDecodeError(
                "Create response contained no shipment",
                status_code=response.status_code,
                response_body=response.text[:MAX_ERROR_BODY],
            )

        self._log.info("Created shipment", shipment_id=created.id, custom_id=created.custom_id)
        return created

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def list_customers(
        self,
        filters: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> list[Customer]:
        """List customers (id and name only) matching filters."""
        params: dict[str, Any] = dict(filters or {})
        params.setdefault("start", "0")
        params.setdefault("pageSize", "50")

        response = self._make_request("GET", "customers/list", params=params, timeout=timeout)
        page = decode_customer_page(self._json(response), start=_as_int(params["start"]))
        return page.items

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics for monitoring."""
        return {
            "base_url": self.config.base_url,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": round(self._error_count / max(1, self._request_count), 4),
            "tokens": self.tokens.get_stats(),
        }

    def health_check(self) -> dict[str, Any]:
        """Verify API connectivity and credentials."""
        try:
            page = self.list_shipments_page(page_size=1)
            return {
                "status": "healthy",
                "base_url": self.config.base_url,
                "authenticated": bool(self.tokens.access_token),
                "sample_count": len(page.items),
            }
        except TurvoRateLimitError as e:
            return {"status": "rate_limited", "retry_after": e.retry_after}
        except TurvoAPIError as e:
            return {"status": "error", "message": str(e)}
        except httpx.HTTPError as e:
            return {"status": "error", "message": str(e)}


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0

"""Commerce platform REST client - fetches single pages of paginated collections"""

import logging
import httpx
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
from purchase_sync.config import settings
from purchase_sync.domain.exceptions import ShopAPIError, ShopResponseParseError
from purchase_sync.domain.models import Customer, LineItem, Order, Product, Resource, split_tags
from purchase_sync.infrastructure.observability.metrics import (
    shop_api_failure_counter,
    shop_page_latency_histogram,
)
from purchase_sync.utils.date_utils import parse_timestamp

MAX_PAGE_SIZE = 250  # Enforced by the upstream
CURSOR_PARAM = "page_info"
PAGE_SIZE_PARAM = "limit"
ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


def parse_customer(data: Mapping[str, Any]) -> Customer:
    return Customer(
        id=int(data["id"]),
        email=data.get("email"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
        state=data.get("state") or "",
        orders_count=int(data.get("orders_count") or 0),
        total_spent=str(data.get("total_spent") or "0.00"),
        tags=split_tags(data.get("tags")),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
    )


def parse_product(data: Mapping[str, Any]) -> Product:
    return Product(
        id=int(data["id"]),
        title=data.get("title") or "",
        handle=data.get("handle") or "",
        tags=split_tags(data.get("tags")),
    )


def parse_line_item(data: Mapping[str, Any]) -> LineItem:
    product_id = data.get("product_id")
    variant_id = data.get("variant_id")
    return LineItem(
        id=int(data["id"]),
        product_id=int(product_id) if product_id is not None else None,
        quantity=int(data.get("quantity") or 0),
        title=data.get("title") or "",
        price=str(data.get("price") or "0.00"),
        variant_id=int(variant_id) if variant_id is not None else None,
    )


def parse_order(data: Mapping[str, Any]) -> Order:
    created_at = parse_timestamp(data["created_at"])
    if created_at is None:
        raise ValueError(f"order {data.get('id')} has no created_at")
    customer = data.get("customer")
    # Deleted or anonymised customers come back as an object without an id
    if not customer or customer.get("id") is None:
        customer = None
    return Order(
        id=int(data["id"]),
        created_at=created_at,
        financial_status=data.get("financial_status") or "",
        total_price=str(data.get("total_price") or "0.00"),
        order_number=data.get("order_number"),
        customer=parse_customer(customer) if customer else None,
        line_items=tuple(parse_line_item(item) for item in data.get("line_items") or []),
        updated_at=parse_timestamp(data.get("updated_at")),
        cancelled_at=parse_timestamp(data.get("cancelled_at")),
        closed_at=parse_timestamp(data.get("closed_at")),
        note=data.get("note"),
    )


PARSERS: Dict[Resource, Callable[[Mapping[str, Any]], Any]] = {
    Resource.CUSTOMERS: parse_customer,
    Resource.ORDERS: parse_order,
    Resource.PRODUCTS: parse_product,
}

SINGULAR: Dict[Resource, str] = {
    Resource.CUSTOMERS: "customer",
    Resource.ORDERS: "order",
    Resource.PRODUCTS: "product",
}


def extract_next_cursor(response: httpx.Response) -> Optional[str]:
    """Cursor token from the rel="next" entry of the Link header, if any"""
    next_link = response.links.get("next")
    if not next_link or not next_link.get("url"):
        return None
    return httpx.URL(next_link["url"]).params.get(CURSOR_PARAM)


@dataclass
class Page:
    """One page of a collection plus the cursor for the following page"""

    items: List[Any]
    next_cursor: Optional[str]
    page_index: int


class ShopClient:
    """Client for the upstream commerce REST Admin API"""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.shop_base_url
        self.api_version = api_version or settings.shop_api_version
        self.timeout = timeout or settings.http_timeout_seconds
        token = access_token if access_token is not None else settings.shop_access_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={ACCESS_TOKEN_HEADER: token},
            timeout=self.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ShopClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def collection_path(self, resource: Resource) -> str:
        return f"/admin/api/{self.api_version}/{resource.value}.json"

    def customer_orders_path(self, customer_id: int) -> str:
        return f"/admin/api/{self.api_version}/customers/{customer_id}/orders.json"

    async def _get(
        self,
        path: str,
        params: Mapping[str, Any] | None,
        resource: Resource,
        page_index: int | None = None,
    ) -> httpx.Response:
        """
        Issue a GET and raise on anything but a 2xx.

        Raises:
            ShopAPIError: On timeout, network failure, or non-success status
        """
        try:
            with shop_page_latency_histogram.labels(resource=resource.value).time():
                response = await self._client.get(path, params=dict(params or {}))
            response.raise_for_status()
            return response

        except httpx.TimeoutException as e:
            shop_api_failure_counter.labels(resource=resource.value).inc()
            raise ShopAPIError(
                f"Shop API timeout after {self.timeout}s fetching {resource.value} page {page_index}",
                page_index=page_index,
                url=path,
            ) from e
        except httpx.HTTPStatusError as e:
            shop_api_failure_counter.labels(resource=resource.value).inc()
            logging.error(
                f"Shop API request failed with status {e.response.status_code}",
                extra={"url": str(e.request.url), "page_index": page_index, "body": e.response.text[:500]},
            )
            raise ShopAPIError(
                f"Shop API error: {e.response.status_code} on {resource.value} page {page_index}",
                status_code=e.response.status_code,
                page_index=page_index,
                url=str(e.request.url),
            ) from e
        except httpx.RequestError as e:
            shop_api_failure_counter.labels(resource=resource.value).inc()
            raise ShopAPIError(
                f"Shop API unreachable: {e}", page_index=page_index, url=path
            ) from e

    async def fetch_page(
        self,
        resource: Resource,
        params: Mapping[str, Any],
        page_index: int = 0,
        path: str | None = None,
    ) -> Page:
        """
        Fetch one page of a collection.

        `path` overrides the collection path, e.g. for customer-scoped orders.

        Raises:
            ShopAPIError: Transport failure or non-success status
            ShopResponseParseError: Body is not a list of parseable entities
        """
        response = await self._get(path or self.collection_path(resource), params, resource, page_index)
        try:
            payload = response.json()
            items = [PARSERS[resource](raw) for raw in payload.get(resource.value) or []]
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            shop_api_failure_counter.labels(resource=resource.value).inc()
            raise ShopResponseParseError(
                f"Invalid {resource.value} data on page {page_index}: {e}",
                status_code=response.status_code,
                page_index=page_index,
                url=str(response.request.url),
            ) from e

        return Page(items=items, next_cursor=extract_next_cursor(response), page_index=page_index)

    async def count(self, resource: Resource) -> int:
        """Total size of a collection"""
        response = await self._get(
            f"/admin/api/{self.api_version}/{resource.value}/count.json", None, resource
        )
        try:
            return int(response.json()["count"])
        except (KeyError, ValueError, TypeError) as e:
            raise ShopResponseParseError(f"Invalid {resource.value} count: {e}") from e

    async def _get_one(self, resource: Resource, entity_id: int) -> Optional[Any]:
        path = f"/admin/api/{self.api_version}/{resource.value}/{entity_id}.json"
        try:
            response = await self._get(path, None, resource)
        except ShopAPIError as e:
            if e.status_code == 404:
                return None
            raise
        try:
            return PARSERS[resource](response.json()[SINGULAR[resource]])
        except (KeyError, ValueError, TypeError) as e:
            raise ShopResponseParseError(f"Invalid {SINGULAR[resource]} {entity_id}: {e}") from e

    async def get_customer(self, customer_id: int) -> Optional[Customer]:
        """Single customer, or None when the upstream does not know it"""
        return await self._get_one(Resource.CUSTOMERS, customer_id)

    async def get_product(self, product_id: int) -> Optional[Product]:
        """Single product, or None when the upstream does not know it"""
        return await self._get_one(Resource.PRODUCTS, product_id)

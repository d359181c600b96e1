"""Exhaustive cursor-paginated crawling of upstream collections"""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional
from purchase_sync.config import settings
from purchase_sync.domain.exceptions import CrawlCancelledError, ShopAPIError
from purchase_sync.domain.models import Customer, Order, OrderQuery, Product, Resource
from purchase_sync.infrastructure.clients.shop import (
    CURSOR_PARAM,
    MAX_PAGE_SIZE,
    PAGE_SIZE_PARAM,
    ShopClient,
)
from purchase_sync.infrastructure.observability.logging import log_crawl_progress
from purchase_sync.utils.date_utils import format_timestamp

# Only ask for what categorization and analytics read
CUSTOMER_FIELDS = "id,email,first_name,last_name,phone,orders_count,state,total_spent,tags,created_at,updated_at"
PRODUCT_FIELDS = "id,title,handle,tags"

PROGRESS_LOG_EVERY = 10  # pages


def order_query_params(query: OrderQuery) -> Dict[str, Any]:
    """Translate an order query into first-page request parameters"""
    params: Dict[str, Any] = {"status": query.status}
    if query.created_at_min is not None:
        params["created_at_min"] = format_timestamp(query.created_at_min)
    if query.created_at_max is not None:
        params["created_at_max"] = format_timestamp(query.created_at_max)
    return params


class CollectionCrawler:
    """
    Drives ShopClient page by page until a collection is exhausted.

    Cursor rule: once the upstream hands back a cursor, follow-up requests carry
    only the cursor and the page size. The upstream binds the original filters
    to the cursor and rejects requests that repeat them.
    """

    def __init__(
        self,
        client: ShopClient,
        page_size: int | None = None,
        fanout_threshold: int | None = None,
    ):
        self.client = client
        self.page_size = min(page_size or settings.page_size, MAX_PAGE_SIZE)
        self.fanout_threshold = (
            fanout_threshold if fanout_threshold is not None else settings.customer_fanout_threshold
        )

    async def crawl(
        self,
        resource: Resource,
        filters: Mapping[str, Any] | None = None,
        page_size: int | None = None,
        result_cap: int | None = None,
        cancel_event: asyncio.Event | None = None,
        path: str | None = None,
    ) -> AsyncIterator[Any]:
        """
        Lazily yield every entity of a filtered collection.

        Stops on an empty page, a missing next cursor, or once `result_cap`
        entities were yielded (the last page is truncated to the exact cap).
        Each call starts over from the first page.
        `path` replaces the collection path for every page of the crawl.

        Raises:
            ShopAPIError: A page failed; carries the page index and status
            CrawlCancelledError: `cancel_event` was set between pages
        """
        if result_cap is not None and result_cap <= 0:
            return

        size = min(page_size or self.page_size, MAX_PAGE_SIZE)
        params: Dict[str, Any] = {**(filters or {}), PAGE_SIZE_PARAM: size}
        page_index = 0
        yielded = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise CrawlCancelledError(
                    f"Crawl of {resource.value} cancelled before page {page_index} ({yielded} fetched)"
                )

            page = await self.client.fetch_page(resource, params, page_index, path=path)
            if not page.items:
                log_crawl_progress(resource.value, page_index + 1, yielded, finished=True)
                break

            batch = page.items
            if result_cap is not None:
                batch = batch[: result_cap - yielded]

            for item in batch:
                yield item
            yielded += len(batch)

            if result_cap is not None and yielded >= result_cap:
                break
            if not page.next_cursor:
                break

            # Follow-up pages: cursor and page size only
            params = {PAGE_SIZE_PARAM: size, CURSOR_PARAM: page.next_cursor}
            page_index += 1

            if page_index % PROGRESS_LOG_EVERY == 0:
                log_crawl_progress(resource.value, page_index, yielded)

    async def collect(
        self,
        resource: Resource,
        filters: Mapping[str, Any] | None = None,
        result_cap: int | None = None,
        predicate: Callable[[Any], bool] | None = None,
        cancel_event: asyncio.Event | None = None,
        path: str | None = None,
    ) -> List[Any]:
        """
        Materialize a crawl, optionally keeping only entities matching `predicate`.

        With a predicate the cap applies to matching entities, not raw ones.
        """
        if predicate is None:
            return [
                item
                async for item in self.crawl(
                    resource, filters, result_cap=result_cap, cancel_event=cancel_event, path=path
                )
            ]

        matched: List[Any] = []
        if result_cap is not None and result_cap <= 0:
            return matched
        async with aclosing(self.crawl(resource, filters, cancel_event=cancel_event, path=path)) as items:
            async for item in items:
                if predicate(item):
                    matched.append(item)
                    if result_cap is not None and len(matched) >= result_cap:
                        break
        return matched

    async def fetch_products(self, cancel_event: asyncio.Event | None = None) -> List[Product]:
        """Every product with the fields categorization needs"""
        products = await self.collect(
            Resource.PRODUCTS, {"fields": PRODUCT_FIELDS}, cancel_event=cancel_event
        )
        logging.info(f"Retrieved {len(products)} products", extra={"resource": "products"})
        return products

    async def fetch_customers_with_tags(
        self,
        tags: Iterable[str] = (),
        exclude_tags: Iterable[str] = (),
        limit: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> List[Customer]:
        """Customers carrying any of `tags` (all when empty) and none of `exclude_tags`"""
        wanted = [t.lower() for t in tags]
        unwanted = [t.lower() for t in exclude_tags]

        def matches(customer: Customer) -> bool:
            has_required = not wanted or any(customer.has_tag(t) for t in wanted)
            return has_required and not any(customer.has_tag(t) for t in unwanted)

        return await self.collect(
            Resource.CUSTOMERS,
            {"fields": CUSTOMER_FIELDS},
            result_cap=limit,
            predicate=matches,
            cancel_event=cancel_event,
        )

    async def fetch_customer_orders(
        self,
        customer_id: int,
        query: OrderQuery = OrderQuery(),
        cancel_event: asyncio.Event | None = None,
    ) -> List[Order]:
        """Orders of a single customer through the customer-scoped order endpoint"""
        return await self.collect(
            Resource.ORDERS,
            order_query_params(query),
            result_cap=query.limit,
            cancel_event=cancel_event,
            path=self.client.customer_orders_path(customer_id),
        )

    async def fetch_orders(
        self,
        query: OrderQuery = OrderQuery(),
        customer_ids: Iterable[int] | None = None,
        cancel_event: asyncio.Event | None = None,
        tolerate_customer_failures: bool = True,
    ) -> List[Order]:
        """
        Fetch orders, optionally restricted to a set of customers.

        Strategy:
        - Up to `fanout_threshold` customer ids: one customer-scoped crawl per
          customer, run concurrently. A failing customer is logged and skipped
          unless `tolerate_customer_failures` is False.
        - More ids: crawl the whole filtered collection and keep orders whose
          customer is in the id set.
        - No ids: crawl the whole filtered collection.
        """
        ids = list(dict.fromkeys(customer_ids or []))

        if ids and len(ids) <= self.fanout_threshold:
            return await self._fetch_orders_for_customers(
                ids, query, cancel_event, tolerate_customer_failures
            )

        predicate: Optional[Callable[[Order], bool]] = None
        if ids:
            wanted = frozenset(ids)
            predicate = lambda order: order.customer_id in wanted  # noqa: E731
            logging.info(
                f"Large customer id list ({len(ids)} customers). Fetching all orders and filtering client-side.",
                extra={"resource": "orders"},
            )

        orders = await self.collect(
            Resource.ORDERS,
            order_query_params(query),
            result_cap=query.limit,
            predicate=predicate,
            cancel_event=cancel_event,
        )
        logging.info(f"Retrieved {len(orders)} orders", extra={"resource": "orders"})
        return orders

    async def _fetch_orders_for_customers(
        self,
        customer_ids: List[int],
        query: OrderQuery,
        cancel_event: asyncio.Event | None,
        tolerate_failures: bool,
    ) -> List[Order]:
        logging.info(
            f"Fetching orders for {len(customer_ids)} specific customers using individual requests",
            extra={"resource": "orders"},
        )
        results = await asyncio.gather(
            *(self.fetch_customer_orders(cid, query, cancel_event) for cid in customer_ids),
            return_exceptions=True,
        )

        orders: List[Order] = []
        for customer_id, result in zip(customer_ids, results):
            if isinstance(result, (CrawlCancelledError, asyncio.CancelledError)):
                raise result
            if isinstance(result, ShopAPIError) and tolerate_failures:
                logging.error(
                    f"Failed to fetch orders for customer {customer_id}: {result}",
                    extra={"customer_id": customer_id, "status_code": result.status_code},
                )
                continue
            if isinstance(result, BaseException):
                raise result
            orders.extend(result)

        logging.info(
            f"Fetched {len(orders)} orders from {len(customer_ids)} customers",
            extra={"resource": "orders"},
        )
        return orders

"""Unit tests for cursor-paginated crawling against a fake upstream"""

import asyncio
import math
import re
import httpx
import pytest
from datetime import datetime, timezone
from purchase_sync.domain.exceptions import CrawlCancelledError, ShopAPIError
from purchase_sync.domain.models import OrderQuery, Resource
from purchase_sync.infrastructure.clients.shop import ShopClient
from purchase_sync.services.crawler import CollectionCrawler
from factories import customer_json, order_json, product_json

CUSTOMER_ORDERS_PATH = re.compile(r"/customers/(\d+)/orders\.json$")


class FakeShop:
    """
    Offset-cursor upstream.

    Customer-scoped order requests go to /customers/{id}/orders.json and the
    next link keeps that path. Follow-up requests carrying anything besides
    limit and page_info are rejected.
    """

    def __init__(self, **collections):
        self.collections = collections
        self.requests = []
        self.fail = {}  # (resource, customer id, request number) -> status code

    def handler(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        scoped = CUSTOMER_ORDERS_PATH.search(request.url.path)
        customer_id = scoped.group(1) if scoped else None
        resource = "orders" if scoped else request.url.path.rsplit("/", 1)[-1][: -len(".json")]
        self.requests.append((resource, customer_id, params))

        status = self.fail.get((resource, customer_id, len(self.requests) - 1))
        if status is None:
            status = self.fail.get((resource, customer_id))
        if status is not None:
            return httpx.Response(status, json={"errors": "boom"})

        limit = int(params["limit"])
        if "page_info" in params:
            if set(params) - {"limit", "page_info"}:
                return httpx.Response(400, json={"errors": "page_info cannot be combined"})
            offset = int(params["page_info"])
        else:
            offset = 0

        items = self.collections.get(resource, [])
        if customer_id:
            items = [i for i in items if (i.get("customer") or {}).get("id") == int(customer_id)]
        page = items[offset:offset + limit]

        headers = {}
        if offset + limit < len(items):
            url = f"https://shop.test{request.url.path}?limit={limit}&page_info={offset + limit}"
            headers["Link"] = f'<{url}>; rel="next"'
        return httpx.Response(200, json={resource: page}, headers=headers)

    def client(self) -> ShopClient:
        return ShopClient(
            base_url="https://shop.test",
            access_token="token",
            transport=httpx.MockTransport(self.handler),
        )


def orders(count, customers=(42,)):
    return [
        order_json(i, customers[i % len(customers)], [1], day=i % 300)
        for i in range(1, count + 1)
    ]


@pytest.mark.parametrize("total", [0, 1, 249, 250, 251, 1000])
@pytest.mark.parametrize("page_size", [7, 250])
async def test_crawl_is_exhaustive(total, page_size):
    """Every item is yielded exactly once in upstream order"""
    shop = FakeShop(orders=orders(total))
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=page_size)
        result = await crawler.collect(Resource.ORDERS)

    assert [o.id for o in result] == list(range(1, total + 1))
    assert len(shop.requests) == max(1, math.ceil(total / page_size))


async def test_follow_up_requests_carry_only_cursor_and_limit():
    """Filters go on the first page only"""
    shop = FakeShop(orders=orders(30))
    query = OrderQuery(status="paid", created_at_min=datetime(2024, 1, 1, tzinfo=timezone.utc))
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=10)
        result = await crawler.fetch_orders(query)

    assert len(result) == 30
    first = shop.requests[0][2]
    assert first == {"status": "paid", "created_at_min": "2024-01-01T00:00:00Z", "limit": "10"}
    for _, _, params in shop.requests[1:]:
        assert set(params) == {"limit", "page_info"}


async def test_result_cap_is_exact():
    """A cap stops the crawl and truncates the last page"""
    shop = FakeShop(orders=orders(1000))
    async with shop.client() as client:
        crawler = CollectionCrawler(client)
        result = await crawler.fetch_orders(OrderQuery(limit=300))

    assert len(result) == 300
    assert len(shop.requests) == 2


async def test_page_size_is_clamped_to_upstream_maximum():
    """Requests never ask for more than 250 items"""
    shop = FakeShop(products=[product_json(i, "") for i in range(1, 4)])
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=1000)
        await crawler.fetch_products()

    assert crawler.page_size == 250
    assert shop.requests[0][2]["limit"] == "250"
    assert shop.requests[0][2]["fields"] == "id,title,handle,tags"


async def test_failed_page_aborts_with_page_index():
    """A 500 on the second page surfaces the page index and status"""
    shop = FakeShop(orders=orders(20))
    shop.fail[("orders", None, 1)] = 500
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=10)
        with pytest.raises(ShopAPIError) as exc_info:
            await crawler.fetch_orders()

    assert exc_info.value.status_code == 500
    assert exc_info.value.page_index == 1


async def test_unparseable_page_raises():
    """Malformed entities are reported as an upstream error"""
    shop = FakeShop(orders=[{"id": 1}])
    async with shop.client() as client:
        with pytest.raises(ShopAPIError):
            await CollectionCrawler(client).fetch_orders()


async def test_cancellation_between_pages():
    """Setting the event stops the crawl before the next page is requested"""
    shop = FakeShop(orders=orders(30))
    cancel = asyncio.Event()
    seen = []
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=10)
        with pytest.raises(CrawlCancelledError):
            async for order in crawler.crawl(Resource.ORDERS, cancel_event=cancel):
                seen.append(order.id)
                cancel.set()

    assert len(seen) == 10
    assert len(shop.requests) == 1


async def test_small_customer_list_fans_out_per_customer():
    """Up to the threshold, each customer gets its own scoped crawl"""
    shop = FakeShop(orders=orders(40, customers=(1, 2, 3, 4)))
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=4, fanout_threshold=10)
        result = await crawler.fetch_orders(customer_ids=[1, 3])

    assert {o.customer_id for o in result} == {1, 3}
    assert len(result) == 20
    first_pages = [(cid, params) for _, cid, params in shop.requests if "page_info" not in params]
    assert sorted(cid for cid, _ in first_pages) == ["1", "3"]
    assert all("customer_id" not in params for _, params in first_pages)
    assert len(shop.requests) == 6
    assert {cid for _, cid, _ in shop.requests} == {"1", "3"}


async def test_large_customer_list_filters_client_side():
    """Above the threshold, one full crawl is filtered locally"""
    customers = tuple(range(1, 13))
    shop = FakeShop(orders=orders(48, customers=customers))
    wanted = list(range(1, 12))
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=250, fanout_threshold=10)
        result = await crawler.fetch_orders(customer_ids=wanted)

    assert len(shop.requests) == 1
    assert shop.requests[0][1] is None
    assert {o.customer_id for o in result} == set(wanted)


async def test_failed_customer_is_skipped_when_tolerated():
    """One customer's failure does not sink the others"""
    shop = FakeShop(orders=orders(6, customers=(1, 2)))
    shop.fail[("orders", "2")] = 500
    async with shop.client() as client:
        crawler = CollectionCrawler(client)
        result = await crawler.fetch_orders(customer_ids=[1, 2])

        assert {o.customer_id for o in result} == {1}
        with pytest.raises(ShopAPIError):
            await crawler.fetch_orders(customer_ids=[1, 2], tolerate_customer_failures=False)


async def test_customers_with_tags_filters_and_caps():
    """Tag matching is case-insensitive and the cap counts matches only"""
    shop = FakeShop(
        customers=[
            customer_json(1, "VIP, wholesale"),
            customer_json(2, "retail"),
            customer_json(3, "vip"),
            customer_json(4, "vip, banned"),
            customer_json(5, "vip"),
        ]
    )
    async with shop.client() as client:
        crawler = CollectionCrawler(client, page_size=2)
        result = await crawler.fetch_customers_with_tags(["vip"], exclude_tags=["banned"], limit=2)

    assert [c.id for c in result] == [1, 3]

"""Unit tests for customer analytics lookups over the mock upstream"""

from datetime import timedelta
from purchase_sync.services.customers import (
    get_customer_analytics_by_tags,
    get_customers_likely_to_purchase_soon,
    get_next_purchase_prediction,
)
from factories import BASE_TIME, customer_json, order_json, product_json

NOW = BASE_TIME + timedelta(days=25)


def seed_customers(shop):
    """1: every 10 days, 2: every 100 days, 3: every 5 days, 4: a single order"""
    shop.seed(
        customers=[
            customer_json(1, "vip"),
            customer_json(2, "VIP, wholesale"),
            customer_json(3, "retail"),
            customer_json(4, "retail"),
        ],
        products=[product_json(1, "includeAutomation")],
        orders=[
            order_json(101, 1, [1], day=0),
            order_json(102, 1, [1], day=10),
            order_json(103, 1, [1], day=20),
            order_json(201, 2, [1], day=0),
            order_json(202, 2, [1], day=100),
            order_json(301, 3, [1], day=0),
            order_json(302, 3, [1], day=5),
            order_json(401, 4, [1], day=3),
        ],
    )


async def test_analytics_by_tags(crawler, mock_shop_data):
    """Only tagged customers are analysed, each over their own orders"""
    seed_customers(mock_shop_data)

    analytics = await get_customer_analytics_by_tags(crawler, ["vip"], now=NOW)

    assert [a.customer_id for a in analytics] == [1, 2]
    assert [a.total_orders for a in analytics] == [3, 2]
    routes = sorted(route for route, _ in mock_shop_data.REQUEST_LOG if route.endswith("orders"))
    assert routes == ["customers/1/orders", "customers/2/orders"]


async def test_likely_to_purchase_soon(crawler, mock_shop_data):
    """Repeat buyers due within the threshold, earliest prediction first"""
    seed_customers(mock_shop_data)

    likely = await get_customers_likely_to_purchase_soon(crawler, days_threshold=7, now=NOW)

    assert [a.customer_id for a in likely] == [3, 1]
    assert likely[1].predicted_next_purchase_date == BASE_TIME + timedelta(days=30)


async def test_likely_to_purchase_soon_respects_tags_and_limit(crawler, mock_shop_data):
    seed_customers(mock_shop_data)

    retail = await get_customers_likely_to_purchase_soon(crawler, ["retail"], now=NOW)
    assert [a.customer_id for a in retail] == [3]
    limited = await get_customers_likely_to_purchase_soon(crawler, limit=1, now=NOW)
    assert [a.customer_id for a in limited] == [1]


async def test_next_purchase_prediction(crawler, mock_shop_data):
    """Estimate for a repeat buyer; None for a single order or an unknown customer"""
    seed_customers(mock_shop_data)

    estimate = await get_next_purchase_prediction(crawler, 1, now=NOW)

    assert estimate.predicted_next_purchase_date == BASE_TIME + timedelta(days=30)
    assert estimate.days_since_last_order == 5
    assert estimate.confidence == "Medium"
    assert await get_next_purchase_prediction(crawler, 4, now=NOW) is None
    assert await get_next_purchase_prediction(crawler, 999, now=NOW) is None

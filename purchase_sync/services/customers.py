"""Customer lookups built on the crawler"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from purchase_sync.domain.analytics import calculate_customer_analytics, estimate_next_purchase
from purchase_sync.domain.models import Customer, CustomerAnalytics, NextPurchaseEstimate, OrderQuery
from purchase_sync.services.crawler import CollectionCrawler
from purchase_sync.utils.date_utils import utc_now

ALL_ORDERS = OrderQuery(status="any")


async def get_customer_analytics(crawler: CollectionCrawler, customer_id: int) -> Optional[CustomerAnalytics]:
    """Analytics over a customer's full order history; None for unknown customers"""
    customer = await crawler.client.get_customer(customer_id)
    if customer is None:
        logging.warning(f"Customer {customer_id} not found")
        return None

    orders = await crawler.fetch_customer_orders(customer_id, ALL_ORDERS)
    return calculate_customer_analytics(customer, orders)


async def analytics_for_customers(
    crawler: CollectionCrawler,
    customers: List[Customer],
    now: datetime | None = None,
) -> List[CustomerAnalytics]:
    """Fetch every customer's orders concurrently and summarize each one"""
    order_lists = await asyncio.gather(
        *(crawler.fetch_customer_orders(customer.id, ALL_ORDERS) for customer in customers)
    )
    return [
        calculate_customer_analytics(customer, orders, now=now)
        for customer, orders in zip(customers, order_lists)
    ]


async def get_customer_analytics_by_tags(
    crawler: CollectionCrawler,
    tags: Iterable[str],
    limit: int = 100,
    now: datetime | None = None,
) -> List[CustomerAnalytics]:
    """Analytics for up to `limit` customers carrying any of `tags`"""
    tags = list(tags)
    customers = await crawler.fetch_customers_with_tags(tags, limit=limit)
    analytics = await analytics_for_customers(crawler, customers, now)
    logging.info(
        f"Calculated analytics for {len(analytics)} customers with tags: {', '.join(tags)}",
        extra={"tags": tags},
    )
    return analytics


async def get_customers_likely_to_purchase_soon(
    crawler: CollectionCrawler,
    tags: Iterable[str] = (),
    days_threshold: int = 7,
    limit: int = 25,
    now: datetime | None = None,
) -> List[CustomerAnalytics]:
    """
    Customers whose predicted next purchase falls within `days_threshold` days.

    Only customers with more than one order qualify. At most `limit`
    customers are analysed; results are sorted by predicted date, earliest first.
    Predictions already in the past count as due.
    """
    now = now or utc_now()
    horizon = now + timedelta(days=days_threshold)
    customers = await crawler.fetch_customers_with_tags(tags, limit=limit)
    analytics = await analytics_for_customers(crawler, customers, now)

    likely = sorted(
        (
            a
            for a in analytics
            if a.total_orders > 1
            and a.predicted_next_purchase_date is not None
            and a.predicted_next_purchase_date <= horizon
        ),
        key=lambda a: a.predicted_next_purchase_date,
    )
    logging.info(f"Found {len(likely)} customers likely to purchase within {days_threshold} days")
    return likely


async def get_next_purchase_prediction(
    crawler: CollectionCrawler,
    customer_id: int,
    now: datetime | None = None,
) -> Optional[NextPurchaseEstimate]:
    """Next purchase estimate for one customer; None with fewer than two orders"""
    orders = await crawler.fetch_customer_orders(customer_id, ALL_ORDERS)
    return estimate_next_purchase(customer_id, orders, now=now)

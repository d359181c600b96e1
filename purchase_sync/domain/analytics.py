"""Customer purchase analytics"""

from collections import Counter
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from purchase_sync.domain.aggregation import newest_first, oldest_first
from purchase_sync.domain.models import Customer, CustomerAnalytics, NextPurchaseEstimate, Order
from purchase_sync.domain.prediction import (
    MIN_PURCHASES_FOR_PREDICTION,
    population_std_dev,
    predict_next_purchase,
    purchase_intervals,
)
from purchase_sync.utils.date_utils import utc_now

RECENT_ORDERS = 5
FAVORITE_PRODUCTS = 5


def parse_price(value: str) -> Decimal:
    """Upstream prices are decimal strings; unparseable values count as zero"""
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        return Decimal("0")


def purchase_frequency(average_days_between_orders: int | None) -> str:
    """
    Bucket a customer by how often they buy.

    - Regular: every 30 days or less
    - Occasional: every 31-90 days
    - One-time: anything slower, or a single purchase
    """
    if average_days_between_orders is None:
        return "One-time"
    if average_days_between_orders <= 30:
        return "Regular"
    if average_days_between_orders <= 90:
        return "Occasional"
    return "One-time"


def favorite_products(orders: List[Order], top: int = FAVORITE_PRODUCTS) -> List[str]:
    """Most frequently bought line-item titles"""
    counts = Counter(item.title for order in orders for item in order.line_items if item.title)
    return [title for title, _ in counts.most_common(top)]


def calculate_customer_analytics(
    customer: Customer,
    orders: List[Order],
    now: datetime | None = None,
) -> CustomerAnalytics:
    """
    Summarize spend, cadence and favorites for one customer's orders.

    The predicted date comes from the same predictor as the per-category
    forecasts: fractional-day intervals, with a 0.25 x std buffer once there
    are three or more intervals. Whole-day intervals with a fixed 0.5 x std
    buffer are not used.
    """
    now = now or utc_now()
    analytics = CustomerAnalytics(
        customer_id=customer.id,
        email=customer.email,
        first_name=customer.first_name,
        last_name=customer.last_name,
        phone=customer.phone,
        tags=list(customer.tags),
        total_orders=len(orders),
        recent_orders=list(newest_first(orders)[:RECENT_ORDERS]),
    )
    if not orders:
        return analytics

    total_spent = sum((parse_price(o.total_price) for o in orders), Decimal("0"))
    analytics.total_spent = str(total_spent)
    analytics.average_order_value = str((total_spent / len(orders)).quantize(Decimal("0.01")))

    ordered = oldest_first(orders)
    analytics.last_order_date = ordered[-1].created_at
    analytics.days_since_last_order = (now - analytics.last_order_date).days

    if len(ordered) > 1:
        intervals = purchase_intervals([o.created_at for o in ordered])
        analytics.average_days_between_orders = int(sum(intervals) / len(intervals))

    prediction = predict_next_purchase([o.created_at for o in ordered], calculated_at=now)
    analytics.predicted_next_purchase_date = prediction.next_purchase_date
    analytics.purchase_frequency = purchase_frequency(analytics.average_days_between_orders)
    analytics.favorite_products = favorite_products(orders)

    return analytics


def estimate_confidence_label(orders: List[Order]) -> str:
    """
    High / Medium / Low label for a customer-level estimate.

    Fewer than 3 orders is Low and fewer than 5 is Medium. Beyond that the
    coefficient of variation of the intervals decides: below 0.3 High, below
    0.6 Medium, otherwise Low.
    """
    if len(orders) < 3:
        return "Low"
    if len(orders) < 5:
        return "Medium"

    intervals = purchase_intervals([o.created_at for o in oldest_first(orders)])
    mean = sum(intervals) / len(intervals)
    cv = population_std_dev(intervals) / mean if mean else 0.0
    if cv < 0.3:
        return "High"
    if cv < 0.6:
        return "Medium"
    return "Low"


def estimate_next_purchase(
    customer_id: int,
    orders: List[Order],
    now: datetime | None = None,
) -> Optional[NextPurchaseEstimate]:
    """Next purchase estimate over all of a customer's orders; None below two orders"""
    if len(orders) < MIN_PURCHASES_FOR_PREDICTION:
        return None

    now = now or utc_now()
    ordered = oldest_first(orders)
    prediction = predict_next_purchase([o.created_at for o in ordered], calculated_at=now)
    if prediction.next_purchase_date is None:
        return None

    last_order_date = ordered[-1].created_at
    return NextPurchaseEstimate(
        customer_id=customer_id,
        predicted_next_purchase_date=prediction.next_purchase_date,
        total_orders=len(orders),
        last_order_date=last_order_date,
        days_since_last_order=(now - last_order_date).days,
        confidence=estimate_confidence_label(orders),
    )

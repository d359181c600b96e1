"""Next-purchase forecasting from a customer's purchase timeline"""

import math
from datetime import datetime
from typing import Dict, Iterable, List, Sequence
from purchase_sync.domain.models import Order, ProductSummary, PurchasePrediction
from purchase_sync.utils.date_utils import add_days, days_between, utc_now

MIN_PURCHASES_FOR_PREDICTION = 2
FULL_CONFIDENCE_INTERVALS = 5  # Sample-size factor saturates here
MIN_INTERVALS_FOR_BUFFER = 3
STDDEV_BUFFER_FACTOR = 0.25

HIGH_CONFIDENCE = 0.7
MODERATE_CONFIDENCE = 0.4


def purchase_intervals(purchase_dates: Sequence[datetime]) -> List[float]:
    """Days between consecutive purchases (input must be ascending)"""
    return [days_between(a, b) for a, b in zip(purchase_dates, purchase_dates[1:])]


def population_std_dev(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def calculate_confidence(average_interval: float, std_dev: float, interval_count: int) -> float:
    """
    Confidence in [0, 1] rewarding consistency and sample size.

    confidence = max(0, 1 - cv / 2) * min(1, intervals / 5), cv = std / |mean|

    A zero mean only happens when every purchase shares a timestamp, in which
    case the spread is zero as well and cv is taken as 0.
    """
    cv = std_dev / abs(average_interval) if average_interval else 0.0
    consistency = max(0.0, 1 - cv / 2)
    sample_size = min(1.0, interval_count / FULL_CONFIDENCE_INTERVALS)
    return round(consistency * sample_size, 2)


def describe_confidence(confidence: float, interval_count: int, category_name: str) -> str:
    label = f"{category_name} " if category_name else ""
    if confidence >= HIGH_CONFIDENCE:
        return (
            f"High confidence prediction based on {interval_count} purchase intervals. "
            f"Consistent {label}purchase pattern."
        )
    if confidence >= MODERATE_CONFIDENCE:
        return (
            f"Moderate confidence prediction based on {interval_count} purchase intervals. "
            f"Some variation in {label}purchase timing."
        )
    return (
        f"Low confidence prediction based on {interval_count} purchase intervals. "
        f"Irregular {label}purchase pattern."
    )


def predict_next_purchase(
    purchase_dates: Iterable[datetime],
    category_name: str = "",
    calculated_at: datetime | None = None,
) -> PurchasePrediction:
    """
    Forecast the next purchase date from past purchase timestamps.

    Rules:
    - Fewer than 2 purchases: insufficient data, confidence 0
    - Average interval is the arithmetic mean of day gaps, spread is the
      population standard deviation
    - Next date = last purchase + mean, plus 0.25 * std once 3+ intervals exist

    Insufficient data is a normal outcome; this never raises for it.
    """
    dates = sorted(purchase_dates)
    calculated_at = calculated_at or utc_now()

    if len(dates) < MIN_PURCHASES_FOR_PREDICTION:
        label = f"{category_name} " if category_name else ""
        return PurchasePrediction(
            purchase_dates=dates,
            has_sufficient_data=False,
            confidence_level=0.0,
            prediction_reason=(
                f"Need at least {MIN_PURCHASES_FOR_PREDICTION} {label}orders to calculate "
                f"prediction. Found {len(dates)} order(s)"
            ),
            calculated_at=calculated_at,
        )

    intervals = purchase_intervals(dates)
    average_interval = sum(intervals) / len(intervals)
    std_dev = population_std_dev(intervals)
    confidence = calculate_confidence(average_interval, std_dev, len(intervals))

    adjusted_interval = average_interval
    if len(intervals) >= MIN_INTERVALS_FOR_BUFFER:
        adjusted_interval += std_dev * STDDEV_BUFFER_FACTOR

    return PurchasePrediction(
        purchase_dates=dates,
        has_sufficient_data=True,
        confidence_level=confidence,
        prediction_reason=describe_confidence(confidence, len(intervals), category_name),
        calculated_at=calculated_at,
        average_days_between_purchases=average_interval,
        standard_deviation_days=std_dev,
        next_purchase_date=add_days(dates[-1], adjusted_interval),
    )


def summarize_category_products(
    orders: Iterable[Order],
    category_product_ids: Iterable[int],
    product_tags: Dict[int, Sequence[str]] | None = None,
) -> List[ProductSummary]:
    """Per-product purchase counts and quantities for one category's orders"""
    wanted = frozenset(category_product_ids)
    tags = product_tags or {}
    summaries: Dict[int, ProductSummary] = {}

    for order in orders:
        for item in order.line_items:
            if item.product_id is None or item.product_id not in wanted:
                continue
            summary = summaries.get(item.product_id)
            if summary is None:
                summary = ProductSummary(
                    product_id=item.product_id,
                    title=item.title,
                    tags=list(tags.get(item.product_id, ())),
                    purchase_count=0,
                    total_quantity_purchased=0,
                    last_purchase_date=order.created_at,
                )
                summaries[item.product_id] = summary
            summary.purchase_count += 1
            summary.total_quantity_purchased += item.quantity
            if order.created_at > summary.last_purchase_date:
                summary.last_purchase_date = order.created_at

    return list(summaries.values())


def predict_for_category(
    orders: Sequence[Order],
    category_name: str,
    category_product_ids: Iterable[int],
    product_tags: Dict[int, Sequence[str]] | None = None,
    calculated_at: datetime | None = None,
) -> PurchasePrediction | None:
    """Prediction for one category bucket; None when the bucket is empty"""
    if not orders:
        return None
    prediction = predict_next_purchase(
        (order.created_at for order in orders),
        category_name=category_name,
        calculated_at=calculated_at,
    )
    prediction.products_in_category = summarize_category_products(
        orders, category_product_ids, product_tags
    )
    return prediction

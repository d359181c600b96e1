"""Order aggregation - groups orders per customer and splits them into categories"""

from dataclasses import replace
from itertools import groupby
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from purchase_sync.domain.models import (
    AggregationFilters,
    CategoryMembership,
    Customer,
    Order,
)

CustomerCategoryOrders = Dict[int, Dict[str, Tuple[Order, ...]]]


def contains_target_product(order: Order, target_product_ids: Iterable[int]) -> bool:
    """True when at least one line item references a target product"""
    return not order.product_ids.isdisjoint(target_product_ids)


def group_orders_by_customer(orders: Iterable[Order]) -> Dict[int, Tuple[Order, ...]]:
    """Group orders by customer id, dropping orders with no customer reference"""
    with_customer = sorted(
        (order for order in orders if order.customer_id is not None),
        key=lambda o: o.customer_id,
    )
    return {
        customer_id: tuple(group)
        for customer_id, group in groupby(with_customer, key=lambda o: o.customer_id)
    }


def order_categories(order: Order, membership: CategoryMembership) -> frozenset:
    """Every category reachable through the order's line-item products"""
    return frozenset().union(*(membership.get(pid, frozenset()) for pid in order.product_ids))


def newest_first(orders: Iterable[Order]) -> Tuple[Order, ...]:
    return tuple(sorted(orders, key=lambda o: o.created_at, reverse=True))


def oldest_first(orders: Iterable[Order]) -> Tuple[Order, ...]:
    return tuple(sorted(orders, key=lambda o: o.created_at))


def strip_order_for_storage(
    order: Order,
    product_tags: Optional[Mapping[int, Sequence[str]]] = None,
) -> Order:
    """
    Copy of the order without its customer snapshot.

    The snapshot lives once on the document, so every stored order drops it.
    Line items get the tag list of their product when a lookup is supplied.
    """
    lookup = product_tags or {}
    line_items = tuple(
        replace(item, product_tags=tuple(lookup.get(item.product_id, ())))
        if item.product_id in lookup
        else item
        for item in order.line_items
    )
    return replace(order, customer=None, line_items=line_items)


def aggregate(
    orders: Iterable[Order],
    membership: CategoryMembership,
    filters: AggregationFilters = AggregationFilters(),
    product_tags: Optional[Mapping[int, Sequence[str]]] = None,
    categories: Optional[Sequence[str]] = None,
) -> CustomerCategoryOrders:
    """
    Group orders by customer and split each customer's orders by category.

    Steps:
    1. Drop orders without a customer reference
    2. Keep only orders touching a target product (when a target set is given)
    3. Group by customer id
    4. Drop customers whose total order count is below min_orders_per_customer
    5. Put each order into every category its products map to
    6. Sort every bucket newest first
    7. Strip the customer snapshot and attach product tags to line items

    Orders without line items land in no category. Customers left without any
    categorized order are omitted. Every category in `categories` (default: all
    categories present in `membership`) gets a key, possibly empty.
    """
    names = list(categories) if categories is not None else sorted(
        frozenset().union(*membership.values()) if membership else frozenset()
    )

    candidates: Iterable[Order] = orders
    if filters.target_product_ids:
        targets = filters.target_product_ids
        candidates = (o for o in candidates if contains_target_product(o, targets))

    grouped = group_orders_by_customer(candidates)

    if filters.min_orders_per_customer is not None and filters.min_orders_per_customer > 0:
        minimum = filters.min_orders_per_customer
        grouped = {cid: group for cid, group in grouped.items() if len(group) >= minimum}

    result: CustomerCategoryOrders = {}
    for customer_id, customer_orders in grouped.items():
        buckets = {
            name: newest_first(
                strip_order_for_storage(order, product_tags)
                for order in customer_orders
                if name in order_categories(order, membership)
            )
            for name in names
        }
        if any(buckets.values()):
            result[customer_id] = buckets

    return result


def latest_customer_snapshots(orders: Iterable[Order]) -> Dict[int, Customer]:
    """Customer snapshot taken from each customer's most recent order"""
    snapshots: Dict[int, Customer] = {}
    for order in oldest_first(o for o in orders if o.customer is not None):
        snapshots[order.customer.id] = order.customer
    return snapshots


def customers_with_target_products(
    orders: Iterable[Order], target_product_ids: Iterable[int]
) -> List[int]:
    """Sorted distinct customer ids whose orders contain any target product"""
    targets = frozenset(target_product_ids)
    return sorted(
        {
            order.customer_id
            for order in orders
            if order.customer_id is not None and contains_target_product(order, targets)
        }
    )

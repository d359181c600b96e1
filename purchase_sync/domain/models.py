"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


def split_tags(raw: str | None) -> Tuple[str, ...]:
    """Split the upstream comma-separated tag string, dropping blanks"""
    if not raw:
        return ()
    return tuple(tag.strip() for tag in raw.split(",") if tag.strip())


class Resource(str, Enum):
    """Paginated collections exposed by the upstream API"""

    CUSTOMERS = "customers"
    ORDERS = "orders"
    PRODUCTS = "products"


@dataclass(frozen=True)
class Customer:
    """Customer snapshot from the commerce platform"""

    id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    state: str = ""
    orders_count: int = 0
    total_spent: str = "0.00"
    tags: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_tag(self, tag: str) -> bool:
        return tag.lower() in {t.lower() for t in self.tags}


@dataclass(frozen=True)
class Product:
    """Product with the tags used for categorization"""

    id: int
    title: str = ""
    handle: str = ""
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LineItem:
    """Single product line within an order"""

    id: int
    product_id: Optional[int]
    quantity: int = 1
    title: str = ""
    price: str = "0.00"
    variant_id: Optional[int] = None
    product_tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Order:
    """Order as fetched from the commerce platform"""

    id: int
    created_at: datetime
    financial_status: str = ""
    total_price: str = "0.00"  # Decimal-as-string, never float
    order_number: Optional[int] = None
    customer: Optional[Customer] = None
    line_items: Tuple[LineItem, ...] = ()
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    note: Optional[str] = None

    @property
    def customer_id(self) -> Optional[int]:
        return self.customer.id if self.customer is not None else None

    @property
    def product_ids(self) -> FrozenSet[int]:
        return frozenset(item.product_id for item in self.line_items if item.product_id is not None)


# product id -> names of every category the product belongs to
CategoryMembership = Dict[int, FrozenSet[str]]


@dataclass(frozen=True)
class AggregationFilters:
    """Filters applied while grouping orders per customer"""

    target_product_ids: Optional[FrozenSet[int]] = None
    min_orders_per_customer: Optional[int] = None


@dataclass(frozen=True)
class OrderQuery:
    """Filters sent upstream on the first page of an order crawl"""

    status: str = "any"
    limit: Optional[int] = None
    created_at_min: Optional[datetime] = None
    created_at_max: Optional[datetime] = None


@dataclass
class ProductSummary:
    """How one product of a category shows up in a customer's orders"""

    product_id: int
    title: str
    tags: List[str]
    purchase_count: int
    total_quantity_purchased: int
    last_purchase_date: datetime


@dataclass
class PurchasePrediction:
    """Next-purchase forecast for one customer/category pair"""

    purchase_dates: List[datetime]
    has_sufficient_data: bool
    confidence_level: float
    prediction_reason: str
    calculated_at: datetime
    average_days_between_purchases: Optional[float] = None
    standard_deviation_days: Optional[float] = None
    next_purchase_date: Optional[datetime] = None
    products_in_category: List[ProductSummary] = field(default_factory=list)


@dataclass
class OrderFilters:
    """Filters that produced a categorized orders document"""

    status: str = "any"
    limit: Optional[int] = None
    min_orders_per_customer: Optional[int] = None
    created_at_min: Optional[datetime] = None
    created_at_max: Optional[datetime] = None


@dataclass
class CategorizedOrdersDocument:
    """Persisted aggregate: one per customer"""

    customer_id: int
    customer: Customer
    orders_by_category: Dict[str, List[Order]]
    predictions: Dict[str, Optional[PurchasePrediction]]
    filters: OrderFilters
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_orders(self) -> int:
        return sum(len(orders) for orders in self.orders_by_category.values())


@dataclass
class CustomerAnalytics:
    """Purchase behaviour summary for a single customer"""

    customer_id: int
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    tags: List[str]
    total_orders: int
    total_spent: str = "0.00"
    average_order_value: str = "0.00"
    last_order_date: Optional[datetime] = None
    days_since_last_order: Optional[int] = None
    average_days_between_orders: Optional[int] = None
    predicted_next_purchase_date: Optional[datetime] = None
    purchase_frequency: Optional[str] = None
    favorite_products: List[str] = field(default_factory=list)
    recent_orders: List[Order] = field(default_factory=list)


@dataclass
class NextPurchaseEstimate:
    """Customer-level next purchase date across every order, with a coarse label"""

    customer_id: int
    predicted_next_purchase_date: datetime
    total_orders: int
    last_order_date: datetime
    days_since_last_order: int
    confidence: str

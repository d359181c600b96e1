"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel

from purchase_sync.domain.models import (
    CategorizedOrdersDocument,
    Customer,
    CustomerAnalytics,
    NextPurchaseEstimate,
    Product,
)
from purchase_sync.infrastructure.database.serialization import (
    customer_to_json,
    filters_to_json,
    order_to_json,
    prediction_to_json,
)


class SyncResponse(BaseModel):
    """Response for PUT /v1/categorized-orders"""

    processed_customer_ids: List[int]
    processed_count: int
    processed_at: datetime
    state: str
    error: Optional[str] = None


class ProductSummarySchema(BaseModel):
    product_id: int
    title: str
    tags: List[str]
    purchase_count: int
    total_quantity_purchased: int
    last_purchase_date: Optional[datetime] = None


class PurchasePredictionSchema(BaseModel):
    """Next purchase forecast for one category"""

    purchase_dates: List[datetime]
    average_days_between_purchases: Optional[float] = None
    standard_deviation_days: Optional[float] = None
    confidence_level: float
    has_sufficient_data: bool
    prediction_reason: str
    next_purchase_date: Optional[datetime] = None
    calculated_at: Optional[datetime] = None
    products_in_category: List[ProductSummarySchema] = []


class CategorizedOrdersResponse(BaseModel):
    """Stored categorized orders document for one customer"""

    customer_id: int
    customer: Dict[str, Any]
    orders_by_category: Dict[str, List[Dict[str, Any]]]
    predictions: Dict[str, Optional[PurchasePredictionSchema]]
    filters: Dict[str, Any]
    total_orders: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: CategorizedOrdersDocument) -> "CategorizedOrdersResponse":
        return cls(
            customer_id=document.customer_id,
            customer=customer_to_json(document.customer),
            orders_by_category={
                name: [order_to_json(o) for o in orders]
                for name, orders in document.orders_by_category.items()
            },
            predictions={name: prediction_to_json(p) for name, p in document.predictions.items()},
            filters=filters_to_json(document.filters),
            total_orders=document.total_orders,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class CategorizedOrdersListResponse(BaseModel):
    count: int
    documents: List[CategorizedOrdersResponse]


class CategorizedProductsResponse(BaseModel):
    """Response for GET /v1/products/categorized"""

    product_ids_by_category: Dict[str, List[int]]
    counts: Dict[str, int]


class ProductSchema(BaseModel):
    """Response for GET /v1/products/{product_id}"""

    id: int
    title: str
    handle: str
    tags: List[str]
    categories: List[str]

    @classmethod
    def from_product(cls, product: Product, categories: Iterable[str]) -> "ProductSchema":
        return cls(
            id=product.id,
            title=product.title,
            handle=product.handle,
            tags=list(product.tags),
            categories=sorted(categories),
        )


class CustomerSchema(BaseModel):
    id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    orders_count: int = 0
    total_spent: str = "0.00"
    tags: List[str] = []

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerSchema":
        return cls(
            id=customer.id,
            email=customer.email,
            first_name=customer.first_name,
            last_name=customer.last_name,
            phone=customer.phone,
            orders_count=customer.orders_count,
            total_spent=customer.total_spent,
            tags=list(customer.tags),
        )


class CustomersResponse(BaseModel):
    count: int
    customers: List[CustomerSchema]


class CustomerCountResponse(BaseModel):
    count: int


class RecentTargetCustomersResponse(BaseModel):
    """Response for GET /v1/customers/recent-targets"""

    lookup_hours: int
    customer_ids: List[int]


class CustomerAnalyticsResponse(BaseModel):
    """Response for GET /v1/customers/{customer_id}/analytics"""

    customer_id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    tags: List[str]
    total_orders: int
    total_spent: str
    average_order_value: str
    last_order_date: Optional[datetime] = None
    days_since_last_order: Optional[int] = None
    average_days_between_orders: Optional[int] = None
    predicted_next_purchase_date: Optional[datetime] = None
    purchase_frequency: Optional[str] = None
    favorite_products: List[str]
    recent_order_ids: List[int]

    @classmethod
    def from_analytics(cls, analytics: CustomerAnalytics) -> "CustomerAnalyticsResponse":
        return cls(
            customer_id=analytics.customer_id,
            email=analytics.email,
            first_name=analytics.first_name,
            last_name=analytics.last_name,
            phone=analytics.phone,
            tags=analytics.tags,
            total_orders=analytics.total_orders,
            total_spent=analytics.total_spent,
            average_order_value=analytics.average_order_value,
            last_order_date=analytics.last_order_date,
            days_since_last_order=analytics.days_since_last_order,
            average_days_between_orders=analytics.average_days_between_orders,
            predicted_next_purchase_date=analytics.predicted_next_purchase_date,
            purchase_frequency=analytics.purchase_frequency,
            favorite_products=analytics.favorite_products,
            recent_order_ids=[o.id for o in analytics.recent_orders],
        )


class CustomerAnalyticsListResponse(BaseModel):
    count: int
    customers: List[CustomerAnalyticsResponse]


class NextPurchasePredictionResponse(BaseModel):
    """Response for GET /v1/customers/{customer_id}/next-purchase-prediction"""

    customer_id: int
    predicted_next_purchase_date: datetime
    total_orders: int
    last_order_date: datetime
    days_since_last_order: int
    confidence: str

    @classmethod
    def from_estimate(cls, estimate: NextPurchaseEstimate) -> "NextPurchasePredictionResponse":
        return cls(
            customer_id=estimate.customer_id,
            predicted_next_purchase_date=estimate.predicted_next_purchase_date,
            total_orders=estimate.total_orders,
            last_order_date=estimate.last_order_date,
            days_since_last_order=estimate.days_since_last_order,
            confidence=estimate.confidence,
        )

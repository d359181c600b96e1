"""JSON mapping between domain dataclasses and stored document payloads"""

from datetime import datetime
from typing import Any, Dict, Optional
from purchase_sync.domain.models import (
    Customer,
    LineItem,
    Order,
    OrderFilters,
    ProductSummary,
    PurchasePrediction,
)
from purchase_sync.utils.date_utils import parse_timestamp


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def customer_to_json(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "email": customer.email,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "phone": customer.phone,
        "state": customer.state,
        "orders_count": customer.orders_count,
        "total_spent": customer.total_spent,
        "tags": list(customer.tags),
        "created_at": _iso(customer.created_at),
        "updated_at": _iso(customer.updated_at),
    }


def customer_from_json(data: Dict[str, Any]) -> Customer:
    return Customer(
        id=data["id"],
        email=data.get("email"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
        state=data.get("state") or "",
        orders_count=data.get("orders_count") or 0,
        total_spent=data.get("total_spent") or "0.00",
        tags=tuple(data.get("tags") or ()),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
    )


def line_item_to_json(item: LineItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "title": item.title,
        "price": item.price,
        "variant_id": item.variant_id,
        "product_tags": list(item.product_tags),
    }


def order_to_json(order: Order) -> Dict[str, Any]:
    """Stored orders never carry the customer snapshot"""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "cancelled_at": _iso(order.cancelled_at),
        "closed_at": _iso(order.closed_at),
        "financial_status": order.financial_status,
        "total_price": order.total_price,
        "note": order.note,
        "line_items": [line_item_to_json(item) for item in order.line_items],
    }


def order_from_json(data: Dict[str, Any]) -> Order:
    return Order(
        id=data["id"],
        order_number=data.get("order_number"),
        created_at=parse_timestamp(data["created_at"]),
        updated_at=parse_timestamp(data.get("updated_at")),
        cancelled_at=parse_timestamp(data.get("cancelled_at")),
        closed_at=parse_timestamp(data.get("closed_at")),
        financial_status=data.get("financial_status") or "",
        total_price=data.get("total_price") or "0.00",
        note=data.get("note"),
        line_items=tuple(
            LineItem(
                id=item["id"],
                product_id=item.get("product_id"),
                quantity=item.get("quantity") or 0,
                title=item.get("title") or "",
                price=item.get("price") or "0.00",
                variant_id=item.get("variant_id"),
                product_tags=tuple(item.get("product_tags") or ()),
            )
            for item in data.get("line_items") or []
        ),
    )


def prediction_to_json(prediction: Optional[PurchasePrediction]) -> Optional[Dict[str, Any]]:
    if prediction is None:
        return None
    return {
        "purchase_dates": [_iso(d) for d in prediction.purchase_dates],
        "average_days_between_purchases": prediction.average_days_between_purchases,
        "standard_deviation_days": prediction.standard_deviation_days,
        "confidence_level": prediction.confidence_level,
        "has_sufficient_data": prediction.has_sufficient_data,
        "prediction_reason": prediction.prediction_reason,
        "next_purchase_date": _iso(prediction.next_purchase_date),
        "calculated_at": _iso(prediction.calculated_at),
        "products_in_category": [
            {
                "product_id": s.product_id,
                "title": s.title,
                "tags": list(s.tags),
                "purchase_count": s.purchase_count,
                "total_quantity_purchased": s.total_quantity_purchased,
                "last_purchase_date": _iso(s.last_purchase_date),
            }
            for s in prediction.products_in_category
        ],
    }


def prediction_from_json(data: Optional[Dict[str, Any]]) -> Optional[PurchasePrediction]:
    if data is None:
        return None
    return PurchasePrediction(
        purchase_dates=[parse_timestamp(d) for d in data.get("purchase_dates") or []],
        average_days_between_purchases=data.get("average_days_between_purchases"),
        standard_deviation_days=data.get("standard_deviation_days"),
        confidence_level=data.get("confidence_level") or 0.0,
        has_sufficient_data=bool(data.get("has_sufficient_data")),
        prediction_reason=data.get("prediction_reason") or "",
        next_purchase_date=parse_timestamp(data.get("next_purchase_date")),
        calculated_at=parse_timestamp(data.get("calculated_at")),
        products_in_category=[
            ProductSummary(
                product_id=s["product_id"],
                title=s.get("title") or "",
                tags=list(s.get("tags") or []),
                purchase_count=s.get("purchase_count") or 0,
                total_quantity_purchased=s.get("total_quantity_purchased") or 0,
                last_purchase_date=parse_timestamp(s.get("last_purchase_date")),
            )
            for s in data.get("products_in_category") or []
        ],
    )


def filters_to_json(filters: OrderFilters) -> Dict[str, Any]:
    return {
        "status": filters.status,
        "limit": filters.limit,
        "min_orders_per_customer": filters.min_orders_per_customer,
        "created_at_min": _iso(filters.created_at_min),
        "created_at_max": _iso(filters.created_at_max),
    }


def filters_from_json(data: Dict[str, Any]) -> OrderFilters:
    return OrderFilters(
        status=data.get("status") or "any",
        limit=data.get("limit"),
        min_orders_per_customer=data.get("min_orders_per_customer"),
        created_at_min=parse_timestamp(data.get("created_at_min")),
        created_at_max=parse_timestamp(data.get("created_at_max")),
    )

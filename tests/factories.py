"""Builders for domain objects and upstream JSON payloads used across tests"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from purchase_sync.domain.models import Customer, LineItem, Order, Product

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_customer(customer_id: int = 42, tags: Iterable[str] = ()) -> Customer:
    return Customer(id=customer_id, email=f"c{customer_id}@example.com", first_name="Test", tags=tuple(tags))


def make_product(product_id: int, tags: Iterable[str] = (), title: Optional[str] = None) -> Product:
    return Product(id=product_id, title=title or f"Product {product_id}", tags=tuple(tags))


def make_order(
    order_id: int,
    customer_id: Optional[int] = 42,
    product_ids: Iterable[int] = (1,),
    day: float = 0,
    total_price: str = "10.00",
) -> Order:
    return Order(
        id=order_id,
        created_at=BASE_TIME + timedelta(days=day),
        financial_status="paid",
        total_price=total_price,
        customer=make_customer(customer_id) if customer_id is not None else None,
        line_items=tuple(
            LineItem(id=order_id * 100 + i, product_id=pid, quantity=1, title=f"Product {pid}")
            for i, pid in enumerate(product_ids)
        ),
    )


def days(*offsets: float) -> List[datetime]:
    return [BASE_TIME + timedelta(days=d) for d in offsets]


# Upstream JSON payloads

def customer_json(customer_id: int, tags: str = "") -> dict:
    return {
        "id": customer_id,
        "email": f"c{customer_id}@example.com",
        "first_name": "Test",
        "last_name": f"Customer{customer_id}",
        "phone": None,
        "state": "enabled",
        "orders_count": 0,
        "total_spent": "0.00",
        "tags": tags,
        "created_at": "2023-12-01T00:00:00Z",
        "updated_at": "2023-12-01T00:00:00Z",
    }


def product_json(product_id: int, tags: str) -> dict:
    return {"id": product_id, "title": f"Product {product_id}", "handle": f"product-{product_id}", "tags": tags}


def order_json(
    order_id: int,
    customer_id: Optional[int],
    product_ids: Iterable[int],
    day: float = 0,
    status: str = "paid",
) -> dict:
    return {
        "id": order_id,
        "order_number": order_id,
        "created_at": (BASE_TIME + timedelta(days=day)).isoformat().replace("+00:00", "Z"),
        "financial_status": status,
        "total_price": "10.00",
        "customer": customer_json(customer_id) if customer_id is not None else None,
        "line_items": [
            {"id": order_id * 100 + i, "product_id": pid, "quantity": 1, "title": f"Product {pid}", "price": "10.00"}
            for i, pid in enumerate(product_ids)
        ],
    }

"""End-to-end sync flows over a multi-page upstream catalogue"""

import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from factories import order_json, product_json

CUSTOMERS = (1, 2, 3)
ORDER_COUNT = 600  # three pages at the upstream maximum


def parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def product_for(order_id: int) -> int:
    if order_id % 5 == 0:
        return 3  # uncategorized
    return 1 if order_id % 2 else 2


@pytest.fixture
def large_catalogue(mock_shop_data):
    mock_shop_data.seed(
        products=[
            product_json(1, "includeAutomation"),
            product_json(2, "dogExtra1"),
            product_json(3, "gift"),
        ],
        orders=[
            order_json(i, CUSTOMERS[i % len(CUSTOMERS)], [product_for(i)], day=i / 10)
            for i in range(1, ORDER_COUNT + 1)
        ],
    )
    return mock_shop_data


def expected_counts(customer_id: int):
    ids = [i for i in range(1, ORDER_COUNT + 1) if CUSTOMERS[i % len(CUSTOMERS)] == customer_id]
    automation = [i for i in ids if product_for(i) == 1]
    dog_extra = [i for i in ids if product_for(i) == 2]
    return automation, dog_extra


def test_full_sync_walks_every_page(client: TestClient, large_catalogue):
    """All 600 orders are crawled across pages and split per customer"""
    response = client.put("/v1/categorized-orders")

    assert response.status_code == 200
    assert response.json()["processed_customer_ids"] == [1, 2, 3]

    order_requests = [params for resource, params in large_catalogue.REQUEST_LOG if resource == "orders"]
    assert len(order_requests) == 3
    assert all(set(params) == {"limit", "page_info"} for params in order_requests[1:])

    for customer_id in CUSTOMERS:
        document = client.get(f"/v1/categorized-orders/{customer_id}").json()
        automation, dog_extra = expected_counts(customer_id)
        stored_automation = [o["id"] for o in document["orders_by_category"]["automation"]]
        stored_dog_extra = [o["id"] for o in document["orders_by_category"]["dogExtra"]]

        assert stored_automation == sorted(automation, reverse=True)
        assert stored_dog_extra == sorted(dog_extra, reverse=True)
        assert document["predictions"]["automation"]["has_sufficient_data"] is True
        assert 0 <= document["predictions"]["automation"]["confidence_level"] <= 1
        for order in document["orders_by_category"]["automation"]:
            assert "customer" not in order
            assert order["line_items"][0]["product_tags"] == ["includeAutomation"]


def test_limit_caps_crawled_orders(client: TestClient, large_catalogue):
    """limit bounds the number of orders considered"""
    response = client.put("/v1/categorized-orders", params={"limit": 30})

    assert response.status_code == 200
    total = sum(d["total_orders"] for d in client.get("/v1/categorized-orders").json()["documents"])
    categorized_in_first_30 = sum(1 for i in range(1, 31) if product_for(i) != 3)
    assert total == categorized_in_first_30


def test_resync_updates_in_place(client: TestClient, large_catalogue):
    """A second cycle keeps created_at and moves updated_at forward"""
    client.put("/v1/categorized-orders")
    first = client.get("/v1/categorized-orders/1").json()

    client.put("/v1/categorized-orders")
    second = client.get("/v1/categorized-orders/1").json()

    assert second["created_at"] == first["created_at"]
    assert parse(second["updated_at"]) >= parse(first["updated_at"])
    assert client.get("/v1/categorized-orders").json()["count"] == 3


def test_large_customer_list_uses_single_crawl(client: TestClient, large_catalogue):
    """More than ten customer ids switch to one filtered crawl"""
    customer_ids = [1, 2] + list(range(100, 110))

    response = client.put("/v1/categorized-orders", params={"customer_ids": customer_ids})

    assert response.json()["processed_customer_ids"] == [1, 2]
    routes = {route for route, _ in large_catalogue.REQUEST_LOG}
    assert routes == {"products", "orders"}

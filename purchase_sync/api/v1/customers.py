"""/v1/customers - customer lookups against the upstream platform"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from purchase_sync.api.dependencies import get_crawler, get_orchestrator
from purchase_sync.api.v1.schemas import (
    CustomerAnalyticsListResponse,
    CustomerAnalyticsResponse,
    CustomerCountResponse,
    CustomerSchema,
    CustomersResponse,
    NextPurchasePredictionResponse,
    RecentTargetCustomersResponse,
)
from purchase_sync.config import settings
from purchase_sync.domain.exceptions import ShopAPIError
from purchase_sync.domain.models import Resource, split_tags
from purchase_sync.services.crawler import CollectionCrawler
from purchase_sync.services.customers import (
    get_customer_analytics,
    get_customer_analytics_by_tags,
    get_customers_likely_to_purchase_soon,
    get_next_purchase_prediction,
)
from purchase_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


@router.get("/customers", response_model=CustomersResponse)
async def get_customers_by_tags(
    tags: Optional[str] = Query(None, description="Comma-separated; any may match"),
    exclude_tags: Optional[str] = Query(None, description="Comma-separated; none may match"),
    limit: Optional[int] = Query(250, gt=0),
    crawler: CollectionCrawler = Depends(get_crawler),
):
    """Customers filtered by tags (case-insensitive)"""
    try:
        customers = await crawler.fetch_customers_with_tags(
            split_tags(tags), split_tags(exclude_tags), limit=limit
        )
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return CustomersResponse(
        count=len(customers),
        customers=[CustomerSchema.from_customer(c) for c in customers],
    )


@router.get("/customers/count", response_model=CustomerCountResponse)
async def get_customer_count(crawler: CollectionCrawler = Depends(get_crawler)):
    """Total number of customers upstream"""
    try:
        count = await crawler.client.count(Resource.CUSTOMERS)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return CustomerCountResponse(count=count)


@router.get("/customers/analytics/by-tags", response_model=CustomerAnalyticsListResponse)
async def get_analytics_by_tags(
    tags: str = Query(..., description="Comma-separated; any may match"),
    limit: int = Query(100, gt=0, le=250),
    crawler: CollectionCrawler = Depends(get_crawler),
):
    """Analytics for every customer carrying one of the tags"""
    tag_list = split_tags(tags)
    if not tag_list:
        raise HTTPException(status_code=400, detail="At least one tag is required")
    try:
        analytics = await get_customer_analytics_by_tags(crawler, tag_list, limit=limit)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return CustomerAnalyticsListResponse(
        count=len(analytics),
        customers=[CustomerAnalyticsResponse.from_analytics(a) for a in analytics],
    )


@router.get("/customers/likely-to-purchase-soon", response_model=CustomerAnalyticsListResponse)
async def get_likely_to_purchase_soon(
    tags: Optional[str] = Query(None, description="Comma-separated; any may match"),
    days_threshold: int = Query(7, ge=1, le=365),
    limit: int = Query(25, ge=1, le=50, description="Customers analysed"),
    crawler: CollectionCrawler = Depends(get_crawler),
):
    """Repeat customers predicted to buy again within `days_threshold` days"""
    try:
        analytics = await get_customers_likely_to_purchase_soon(
            crawler, split_tags(tags), days_threshold=days_threshold, limit=limit
        )
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return CustomerAnalyticsListResponse(
        count=len(analytics),
        customers=[CustomerAnalyticsResponse.from_analytics(a) for a in analytics],
    )


@router.get("/customers/recent-targets", response_model=RecentTargetCustomersResponse)
async def get_recent_target_customers(
    lookup_hours: int = Query(settings.order_lookup_hours, gt=0),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Customers who bought a categorized product within the lookup window"""
    try:
        customer_ids = await orchestrator.recent_target_customers(lookup_hours)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return RecentTargetCustomersResponse(lookup_hours=lookup_hours, customer_ids=customer_ids)


@router.get("/customers/{customer_id}/analytics", response_model=CustomerAnalyticsResponse)
async def get_analytics(customer_id: int, crawler: CollectionCrawler = Depends(get_crawler)):
    """Spend, cadence and next purchase estimate for one customer"""
    try:
        analytics = await get_customer_analytics(crawler, customer_id)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    if analytics is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return CustomerAnalyticsResponse.from_analytics(analytics)


@router.get(
    "/customers/{customer_id}/next-purchase-prediction",
    response_model=NextPurchasePredictionResponse,
)
async def get_next_purchase(customer_id: int, crawler: CollectionCrawler = Depends(get_crawler)):
    """Next purchase date across all of a customer's orders"""
    try:
        estimate = await get_next_purchase_prediction(crawler, customer_id)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    if estimate is None:
        raise HTTPException(
            status_code=404,
            detail="Customer not found or fewer than 2 orders to predict from",
        )
    return NextPurchasePredictionResponse.from_estimate(estimate)

"""/v1/categorized-orders - run a sync cycle and read its stored output"""

import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from purchase_sync.api.dependencies import get_orchestrator, get_request_id
from purchase_sync.api.v1.schemas import (
    CategorizedOrdersListResponse,
    CategorizedOrdersResponse,
    SyncResponse,
)
from purchase_sync.config import settings
from purchase_sync.domain.exceptions import SyncInProgressError
from purchase_sync.infrastructure.database.repositories import CategorizedOrdersRepository
from purchase_sync.infrastructure.database.session import get_db
from purchase_sync.services.orchestrator import SyncOrchestrator, SyncRequest
from purchase_sync.utils.date_utils import ensure_utc

router = APIRouter()


@router.put("/categorized-orders", response_model=SyncResponse)
async def sync_categorized_orders(
    request: Request,
    status: str = Query(settings.default_order_status, description="Order status filter"),
    limit: Optional[int] = Query(None, gt=0, description="Maximum number of orders to crawl"),
    min_orders_per_customer: Optional[int] = Query(None, ge=0),
    created_at_min: Optional[datetime] = Query(None),
    created_at_max: Optional[datetime] = Query(None),
    customer_ids: List[int] = Query([], description="Restrict the sync to these customers"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Run one sync cycle and persist a document per customer.

    Returns:
        Processed customer ids. 502 with processed_count -1 when the product or
        order crawl failed; 409 when a cycle is already running.
    """
    request_id = get_request_id(request)
    sync_request = SyncRequest(
        status=status,
        limit=limit,
        min_orders_per_customer=min_orders_per_customer,
        created_at_min=created_at_min,
        created_at_max=created_at_max,
        customer_ids=tuple(customer_ids),
    )

    try:
        result = await orchestrator.run(sync_request)

    except SyncInProgressError as e:
        logging.warning(f"Sync rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    except Exception as e:
        orchestrator.db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    response = SyncResponse(
        processed_customer_ids=result.processed_customer_ids,
        processed_count=result.processed_count,
        processed_at=result.processed_at,
        state=result.state.value,
        error=result.error,
    )
    if not result.succeeded:
        return JSONResponse(status_code=502, content=response.model_dump(mode="json"))
    return response


@router.get("/categorized-orders", response_model=CategorizedOrdersListResponse)
def list_recent_categorized_orders(
    limit: Optional[int] = Query(50, gt=0),
    db: Session = Depends(get_db),
):
    """Most recently updated documents first"""
    documents = CategorizedOrdersRepository(db).list_recent(limit)
    return CategorizedOrdersListResponse(
        count=len(documents),
        documents=[CategorizedOrdersResponse.from_document(d) for d in documents],
    )


@router.get("/categorized-orders/range", response_model=CategorizedOrdersListResponse)
def list_categorized_orders_by_date_range(
    start: datetime = Query(..., description="Updated at or after"),
    end: datetime = Query(..., description="Updated at or before"),
    db: Session = Depends(get_db),
):
    """Documents whose last update falls inside [start, end]"""
    start, end = ensure_utc(start), ensure_utc(end)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    documents = CategorizedOrdersRepository(db).list_by_update_range(start, end)
    return CategorizedOrdersListResponse(
        count=len(documents),
        documents=[CategorizedOrdersResponse.from_document(d) for d in documents],
    )


@router.get("/categorized-orders/{customer_id}", response_model=CategorizedOrdersResponse)
def get_categorized_orders(customer_id: int, db: Session = Depends(get_db)):
    """Stored document for one customer"""
    document = CategorizedOrdersRepository(db).get_by_customer_id(customer_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Categorized orders not found")
    return CategorizedOrdersResponse.from_document(document)


@router.delete("/categorized-orders/{customer_id}", status_code=204)
def delete_categorized_orders(customer_id: int, db: Session = Depends(get_db)):
    """Drop a customer's stored document"""
    deleted = CategorizedOrdersRepository(db).delete_by_customer_id(customer_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Categorized orders not found")
    db.commit()

"""/v1/products - catalogue lookups and current category membership"""

import logging
from fastapi import APIRouter, Depends, HTTPException

from purchase_sync.api.dependencies import get_orchestrator
from purchase_sync.api.v1.schemas import CategorizedProductsResponse, ProductSchema
from purchase_sync.domain.categories import categorize
from purchase_sync.domain.exceptions import ShopAPIError
from purchase_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


@router.get("/products/categorized", response_model=CategorizedProductsResponse)
async def get_categorized_products(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Product ids per category, computed from the live catalogue"""
    try:
        by_category = await orchestrator.categorized_products()
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    return CategorizedProductsResponse(
        product_ids_by_category={name: sorted(ids) for name, ids in by_category.items()},
        counts={name: len(ids) for name, ids in by_category.items()},
    )


@router.get("/products/{product_id}", response_model=ProductSchema)
async def get_product(product_id: int, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """One product with the categories its tags place it in"""
    try:
        product = await orchestrator.crawler.client.get_product(product_id)
    except ShopAPIError as e:
        logging.error(f"Shop API error: {e}")
        raise HTTPException(status_code=503, detail="Shop service unavailable")

    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    membership = categorize([product], orchestrator.rules)
    return ProductSchema.from_product(product, membership.get(product.id, frozenset()))

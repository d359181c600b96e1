"""Dependency injection for FastAPI endpoints"""

from typing import AsyncIterator
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from purchase_sync.infrastructure.clients.shop import ShopClient
from purchase_sync.infrastructure.database.session import get_db
from purchase_sync.services.crawler import CollectionCrawler
from purchase_sync.services.orchestrator import SyncOrchestrator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


async def get_shop_client() -> AsyncIterator[ShopClient]:
    """Provide an upstream API client, closed after the request"""
    async with ShopClient() as client:
        yield client


def get_crawler(client: ShopClient = Depends(get_shop_client)) -> CollectionCrawler:
    """Provide a collection crawler bound to the request's client"""
    return CollectionCrawler(client)


def get_orchestrator(
    crawler: CollectionCrawler = Depends(get_crawler),
    db: Session = Depends(get_db),
) -> SyncOrchestrator:
    """Provide a sync orchestrator for the request's session"""
    return SyncOrchestrator(crawler, db)

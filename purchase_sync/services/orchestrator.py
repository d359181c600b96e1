"""Sync cycle orchestration: crawl, categorize, aggregate, predict, persist"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from purchase_sync.domain.aggregation import (
    aggregate,
    customers_with_target_products,
    latest_customer_snapshots,
)
from purchase_sync.domain.categories import (
    DEFAULT_CATEGORY_RULES,
    CategoryRule,
    build_product_tag_lookup,
    categorize,
    category_names,
    product_ids_by_category,
)
from purchase_sync.domain.exceptions import (
    CrawlCancelledError,
    InvalidSyncTransitionError,
    ShopAPIError,
    SyncInProgressError,
)
from purchase_sync.domain.models import (
    AggregationFilters,
    CategorizedOrdersDocument,
    Customer,
    Order,
    OrderFilters,
    OrderQuery,
)
from purchase_sync.domain.prediction import predict_for_category
from purchase_sync.infrastructure.database.repositories import CategorizedOrdersRepository
from purchase_sync.infrastructure.observability.logging import log_sync_outcome
from purchase_sync.infrastructure.observability.metrics import record_sync
from purchase_sync.services.crawler import CollectionCrawler
from purchase_sync.utils.date_utils import utc_now

FAILED_COUNT = -1

# One cycle at a time per process
_sync_lock = asyncio.Lock()


class SyncState(str, Enum):
    """Lifecycle of one sync cycle"""

    IDLE = "idle"
    FETCHING_PRODUCTS = "fetching_products"
    FETCHING_ORDERS = "fetching_orders"
    AGGREGATING = "aggregating"
    PREDICTING = "predicting"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS: Dict[SyncState, FrozenSet[SyncState]] = {
    SyncState.IDLE: frozenset({SyncState.FETCHING_PRODUCTS}),
    SyncState.FETCHING_PRODUCTS: frozenset({SyncState.FETCHING_ORDERS}),
    SyncState.FETCHING_ORDERS: frozenset({SyncState.AGGREGATING}),
    SyncState.AGGREGATING: frozenset({SyncState.PREDICTING}),
    SyncState.PREDICTING: frozenset({SyncState.PERSISTING}),
    SyncState.PERSISTING: frozenset({SyncState.DONE}),
    SyncState.DONE: frozenset(),
    SyncState.FAILED: frozenset(),
}


@dataclass
class SyncRun:
    """Current state of a cycle plus the path it took"""

    state: SyncState = SyncState.IDLE
    history: List[SyncState] = field(default_factory=lambda: [SyncState.IDLE])
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(self, to: SyncState) -> None:
        allowed = TRANSITIONS[self.state] | (
            frozenset() if self.is_terminal else frozenset({SyncState.FAILED})
        )
        if to not in allowed:
            raise InvalidSyncTransitionError(f"Cannot move sync from {self.state.value} to {to.value}")
        self.state = to
        self.history.append(to)

    def fail(self, error: str) -> None:
        self.error = error
        self.advance(SyncState.FAILED)


@dataclass(frozen=True)
class SyncRequest:
    """Parameters accepted by the sync entry point"""

    status: str = "any"
    limit: Optional[int] = None
    min_orders_per_customer: Optional[int] = None
    created_at_min: Optional[datetime] = None
    created_at_max: Optional[datetime] = None
    customer_ids: Tuple[int, ...] = ()

    def order_query(self) -> OrderQuery:
        return OrderQuery(
            status=self.status,
            limit=self.limit,
            created_at_min=self.created_at_min,
            created_at_max=self.created_at_max,
        )

    def order_filters(self) -> OrderFilters:
        return OrderFilters(
            status=self.status,
            limit=self.limit,
            min_orders_per_customer=self.min_orders_per_customer,
            created_at_min=self.created_at_min,
            created_at_max=self.created_at_max,
        )


@dataclass
class SyncResult:
    """Summary returned to the caller; processed_count == -1 means the cycle aborted"""

    processed_customer_ids: List[int]
    processed_count: int
    processed_at: datetime
    state: SyncState
    failed_customer_ids: List[int] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.processed_count != FAILED_COUNT


class SyncOrchestrator:
    """Runs one sync cycle end to end against a single database session"""

    def __init__(
        self,
        crawler: CollectionCrawler,
        db: Session,
        rules: Sequence[CategoryRule] = DEFAULT_CATEGORY_RULES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.crawler = crawler
        self.db = db
        self.repository = CategorizedOrdersRepository(db)
        self.rules = tuple(rules)
        self.clock = clock
        self.last_run: Optional[SyncRun] = None

    @staticmethod
    def is_running() -> bool:
        return _sync_lock.locked()

    async def run(self, request: SyncRequest, cancel_event: asyncio.Event | None = None) -> SyncResult:
        """
        Run a full cycle.

        Flow:
        1. Crawl products and categorize them
        2. Crawl orders (scoped to request.customer_ids when given)
        3. Aggregate per customer and category
        4. Predict the next purchase per category
        5. Upsert one document per customer

        A failed crawl in steps 1-2 aborts the cycle and returns a result with
        processed_count == -1. A failed write only skips that customer.

        Raises:
            SyncInProgressError: Another cycle holds the single-flight guard
            CrawlCancelledError: `cancel_event` was set during a crawl

        Any other error after the crawl moves the run to FAILED and propagates.
        """
        if _sync_lock.locked():
            raise SyncInProgressError("A sync cycle is already running")
        async with _sync_lock:
            return await self._run(request, cancel_event)

    async def _run(self, request: SyncRequest, cancel_event: asyncio.Event | None) -> SyncResult:
        start_time = time.time()
        run = SyncRun()
        self.last_run = run
        logging.info(
            "Starting sync cycle",
            extra={
                "status": request.status,
                "limit": request.limit,
                "min_orders_per_customer": request.min_orders_per_customer,
                "created_at_min": str(request.created_at_min),
                "created_at_max": str(request.created_at_max),
                "customer_ids": list(request.customer_ids),
            },
        )

        try:
            run.advance(SyncState.FETCHING_PRODUCTS)
            products = await self.crawler.fetch_products(cancel_event)
            membership = categorize(products, self.rules)

            run.advance(SyncState.FETCHING_ORDERS)
            orders = await self.crawler.fetch_orders(
                request.order_query(),
                customer_ids=request.customer_ids or None,
                cancel_event=cancel_event,
            )
        except ShopAPIError as e:
            failed_in = run.state
            run.fail(str(e))
            logging.error(
                f"Sync aborted while {failed_in.value}: {e}",
                extra={"state": failed_in.value, "page_index": e.page_index, "status_code": e.status_code},
            )
            record_sync("failed")
            duration_ms = (time.time() - start_time) * 1000
            log_sync_outcome(run.state.value, [], [], duration_ms, error=run.error)
            return SyncResult(
                processed_customer_ids=[],
                processed_count=FAILED_COUNT,
                processed_at=self.clock(),
                state=run.state,
                error=run.error,
            )
        except CrawlCancelledError as e:
            run.fail(str(e))
            record_sync("cancelled")
            logging.warning(f"Sync cancelled: {e}")
            raise

        try:
            run.advance(SyncState.AGGREGATING)
            products_by_category = product_ids_by_category(membership, self.rules)
            target_product_ids = frozenset().union(*products_by_category.values())
            product_tags = build_product_tag_lookup(products, membership)
            aggregated = aggregate(
                orders,
                membership,
                AggregationFilters(
                    target_product_ids=target_product_ids,
                    min_orders_per_customer=request.min_orders_per_customer,
                ),
                product_tags=product_tags,
                categories=category_names(self.rules),
            )
            if request.customer_ids:
                wanted = set(request.customer_ids)
                aggregated = {cid: buckets for cid, buckets in aggregated.items() if cid in wanted}
            snapshots = latest_customer_snapshots(orders)

            run.advance(SyncState.PREDICTING)
            now = self.clock()
            documents = [
                self.build_document(
                    customer_id,
                    snapshots[customer_id],
                    buckets,
                    products_by_category,
                    product_tags,
                    request.order_filters(),
                    now,
                )
                for customer_id, buckets in aggregated.items()
            ]

            run.advance(SyncState.PERSISTING)
            processed, failed = self.persist(documents, now)
        except Exception as e:
            failed_in = run.state
            run.fail(str(e))
            record_sync("failed")
            logging.exception(f"Sync failed while {failed_in.value}: {e}", extra={"state": failed_in.value})
            raise

        run.advance(SyncState.DONE)
        record_sync("done", persisted=len(processed), failed=len(failed))
        duration_ms = (time.time() - start_time) * 1000
        log_sync_outcome(run.state.value, processed, failed, duration_ms)

        return SyncResult(
            processed_customer_ids=processed,
            processed_count=len(processed),
            processed_at=now,
            state=run.state,
            failed_customer_ids=failed,
        )

    @staticmethod
    def build_document(
        customer_id: int,
        customer: Customer,
        buckets: Mapping[str, Sequence[Order]],
        products_by_category: Mapping[str, FrozenSet[int]],
        product_tags: Mapping[int, Sequence[str]],
        filters: OrderFilters,
        now: datetime,
    ) -> CategorizedOrdersDocument:
        """Assemble the stored document, predicting each non-empty category"""
        return CategorizedOrdersDocument(
            customer_id=customer_id,
            customer=customer,
            orders_by_category={name: list(orders) for name, orders in buckets.items()},
            predictions={
                name: predict_for_category(
                    orders,
                    name,
                    products_by_category.get(name, frozenset()),
                    dict(product_tags),
                    calculated_at=now,
                )
                for name, orders in buckets.items()
            },
            filters=filters,
        )

    def persist(
        self, documents: Sequence[CategorizedOrdersDocument], now: datetime
    ) -> Tuple[List[int], List[int]]:
        """Upsert documents one by one; a failed write is rolled back and skipped"""
        processed: List[int] = []
        failed: List[int] = []
        for document in documents:
            try:
                self.repository.upsert(document, now=now)
                self.db.commit()
                processed.append(document.customer_id)
            except SQLAlchemyError as e:
                self.db.rollback()
                failed.append(document.customer_id)
                logging.error(
                    f"Failed to save categorized orders for customer {document.customer_id}: {e}",
                    extra={"customer_id": document.customer_id},
                )
        return processed, failed

    async def categorized_products(self) -> Dict[str, FrozenSet[int]]:
        """Current category -> product ids view"""
        products = await self.crawler.fetch_products()
        return product_ids_by_category(categorize(products, self.rules), self.rules)

    async def recent_target_customers(self, lookup_hours: int) -> List[int]:
        """Customers whose orders from the last `lookup_hours` include a categorized product"""
        since = self.clock() - timedelta(hours=lookup_hours)
        products_by_category = await self.categorized_products()
        target_product_ids = frozenset().union(*products_by_category.values())
        orders = await self.crawler.fetch_orders(OrderQuery(status="any", created_at_min=since))
        customer_ids = customers_with_target_products(orders, target_product_ids)
        logging.info(
            f"Found {len(customer_ids)} customers with target products in the last {lookup_hours} hours"
        )
        return customer_ids

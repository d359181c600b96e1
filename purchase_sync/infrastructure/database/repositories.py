"""Data access layer for categorized orders documents"""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from purchase_sync.domain.models import CategorizedOrdersDocument
from purchase_sync.infrastructure.database.models import CategorizedOrdersRecord
from purchase_sync.infrastructure.database.serialization import (
    customer_from_json,
    customer_to_json,
    filters_from_json,
    filters_to_json,
    order_from_json,
    order_to_json,
    prediction_from_json,
    prediction_to_json,
)
from purchase_sync.utils.date_utils import ensure_utc, utc_now


def to_document(record: CategorizedOrdersRecord) -> CategorizedOrdersDocument:
    """Rebuild the domain document from a stored row"""
    return CategorizedOrdersDocument(
        customer_id=record.customer_id,
        customer=customer_from_json(record.customer),
        orders_by_category={
            name: [order_from_json(o) for o in orders]
            for name, orders in record.orders_by_category.items()
        },
        predictions={
            name: prediction_from_json(p) for name, p in record.predictions.items()
        },
        filters=filters_from_json(record.filters),
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
    )


class CategorizedOrdersRepository:
    """Repository for categorized orders, keyed by customer id"""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, document: CategorizedOrdersDocument, now: datetime | None = None) -> CategorizedOrdersDocument:
        """
        Insert or replace the document for a customer.

        Requirements:
        - Existing document: keep its created_at, overwrite everything else
        - New document: created_at = now
        - updated_at = now on every write
        - Never more than one row per customer (last write wins)

        Flushes but does not commit; the caller owns the transaction.
        """
        now = now or utc_now()
        record = self._find(document.customer_id)

        if record is None:
            record = CategorizedOrdersRecord(customer_id=document.customer_id, created_at=now)
            self.db.add(record)
            document.created_at = now
            logging.info(f"Saved new categorized orders for customer {document.customer_id}")
        else:
            document.created_at = ensure_utc(record.created_at)  # Preserve original creation time
            logging.info(f"Updated categorized orders for customer {document.customer_id}")

        document.updated_at = now
        record.customer = customer_to_json(document.customer)
        record.orders_by_category = {
            name: [order_to_json(o) for o in orders]
            for name, orders in document.orders_by_category.items()
        }
        record.predictions = {
            name: prediction_to_json(p) for name, p in document.predictions.items()
        }
        record.filters = filters_to_json(document.filters)
        record.status = document.filters.status
        record.total_orders = document.total_orders
        record.updated_at = now

        self.db.flush()
        return document

    def _find(self, customer_id: int) -> Optional[CategorizedOrdersRecord]:
        return (
            self.db.query(CategorizedOrdersRecord)
            .filter(CategorizedOrdersRecord.customer_id == customer_id)
            .order_by(CategorizedOrdersRecord.updated_at.desc())
            .first()
        )

    def get_by_customer_id(self, customer_id: int) -> Optional[CategorizedOrdersDocument]:
        """Most recently updated document for a customer, or None"""
        record = self._find(customer_id)
        return to_document(record) if record is not None else None

    def list_recent(self, limit: int | None = None) -> List[CategorizedOrdersDocument]:
        """Documents ordered by last update, newest first"""
        query = self.db.query(CategorizedOrdersRecord).order_by(CategorizedOrdersRecord.updated_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return [to_document(r) for r in query.all()]

    def list_by_update_range(self, start: datetime, end: datetime) -> List[CategorizedOrdersDocument]:
        """Documents last updated within [start, end], newest first"""
        records = (
            self.db.query(CategorizedOrdersRecord)
            .filter(CategorizedOrdersRecord.updated_at >= start)
            .filter(CategorizedOrdersRecord.updated_at <= end)
            .order_by(CategorizedOrdersRecord.updated_at.desc())
            .all()
        )
        return [to_document(r) for r in records]

    def delete_by_customer_id(self, customer_id: int) -> bool:
        """Remove a customer's document; False when there was none"""
        deleted = (
            self.db.query(CategorizedOrdersRecord)
            .filter(CategorizedOrdersRecord.customer_id == customer_id)
            .delete()
        )
        self.db.flush()
        return deleted > 0

    def count(self) -> int:
        return self.db.query(CategorizedOrdersRecord).count()

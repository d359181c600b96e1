"""SQLAlchemy ORM models for persisted sync output"""

import uuid
from sqlalchemy import Column, BigInteger, DateTime, Integer, Text, JSON, Uuid
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CategorizedOrdersRecord(Base):
    """One categorized orders document per customer"""

    __tablename__ = "categorized_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(BigInteger, nullable=False, unique=True, index=True)
    customer = Column(JSON, nullable=False)
    orders_by_category = Column(JSON, nullable=False)  # category -> [order, ...]
    predictions = Column(JSON, nullable=False)  # category -> prediction | null
    filters = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="any")
    total_orders = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)

"""
Database Models

Tables read by the analytics layer:

- stores: Storefront owner, slug and profile
- products: Products shown on a storefront
- events: Append-only analytics event log (page views, clicks, leads, purchases)

Ids are stored as 36 character UUID strings so the same schema works on
PostgreSQL and SQLite.
"""

from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class StoreRecord(Base):
    """
    Store Table

    One storefront per owner; the slug is the public path segment.
    """
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ProductRecord(Base):
    """Product Table"""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(36), ForeignKey("stores.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # link, lead_magnet, digital_product
    position: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_products_store_position", "store_id", "position"),
    )


class EventRecord(Base):
    """
    Event Log Table

    Append-only; rows are never updated. ``event_data`` holds the payload
    for the row's event type.
    """
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(36))
    session_id: Mapped[Optional[str]] = mapped_column(String(36))
    ip_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 of the client IP
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    event_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    # UTM parameters
    utm_source: Mapped[Optional[str]] = mapped_column(String(100))
    utm_medium: Mapped[Optional[str]] = mapped_column(String(100))
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(100))
    utm_content: Mapped[Optional[str]] = mapped_column(String(100))
    utm_term: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_events_store_created", "store_id", "created_at"),
        Index("ix_events_store_type_created", "store_id", "event_type", "created_at"),
        Index("ix_events_store_product", "store_id", "product_id"),
    )

"""
Event Sources

Read (and append) access to the storefront event log:
- EventQuery: filter over store, created_at window, type, product and UTM source
- SqlEventSource: SQLAlchemy async queries over the events and products tables
- MemoryEventSource: list-backed source for development and tests

Rows are validated into Event objects here, once, so everything downstream
works with typed payloads.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront_core.analytics.dates import as_utc
from storefront_core.analytics.events import Event, EventType
from storefront_core.analytics.models import ProductInfo, ProductType
from storefront_core.database.connection import session_scope
from storefront_core.database.models import EventRecord, ProductRecord
from storefront_core.exceptions import EventSourceError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EventQuery:
    """Filter over the event log; both window bounds are inclusive"""
    store_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    event_type: Optional[EventType] = None
    product_id: Optional[str] = None
    require_product: bool = False
    require_utm_source: bool = False

    def matches(self, event: Event) -> bool:
        if event.store_id != self.store_id:
            return False
        created_at = as_utc(event.created_at)
        if self.start is not None and created_at < as_utc(self.start):
            return False
        if self.end is not None and created_at > as_utc(self.end):
            return False
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        if self.product_id is not None and event.product_id != self.product_id:
            return False
        if self.require_product and not event.product_id:
            return False
        if self.require_utm_source and not event.utm_source:
            return False
        return True


class EventSource(Protocol):
    """Read side of the event log"""

    async def fetch_events(self, query: EventQuery) -> List[Event]:
        ...

    async def count_events(self, query: EventQuery) -> int:
        ...

    async def get_products(self, product_ids: Sequence[str]) -> Dict[str, ProductInfo]:
        ...

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        ...


class EventSink(Protocol):
    """Write side of the event log"""

    async def record_event(self, event: Event) -> None:
        ...


def _product_type(value: Optional[str]) -> Optional[ProductType]:
    try:
        return ProductType(value) if value else None
    except ValueError:
        return None


class MemoryEventSource:
    """
    In-process event log.

    Example:
        source = MemoryEventSource(products=[ProductInfo(id="p1", name="Guide")])
        await source.record_event(event)
    """

    def __init__(
        self,
        events: Optional[Iterable[Event]] = None,
        products: Optional[Iterable[ProductInfo]] = None,
    ):
        self.events: List[Event] = list(events or [])
        self.products: Dict[str, ProductInfo] = {p.id: p for p in products or []}

    def add_product(self, product: ProductInfo) -> None:
        self.products[product.id] = product

    async def record_event(self, event: Event) -> None:
        self.events.append(event)

    async def fetch_events(self, query: EventQuery) -> List[Event]:
        matched = [event for event in self.events if query.matches(event)]
        return sorted(matched, key=lambda e: as_utc(e.created_at))

    async def count_events(self, query: EventQuery) -> int:
        return sum(1 for event in self.events if query.matches(event))

    async def get_products(self, product_ids: Sequence[str]) -> Dict[str, ProductInfo]:
        return {pid: self.products[pid] for pid in product_ids if pid in self.products}

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        return self.products.get(product_id)


class SqlEventSource:
    """
    Event source over the ``events`` and ``products`` tables.

    Query failures are raised as EventSourceError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _conditions(query: EventQuery) -> List[Any]:
        conditions: List[Any] = [EventRecord.store_id == query.store_id]
        if query.start is not None:
            conditions.append(EventRecord.created_at >= as_utc(query.start))
        if query.end is not None:
            conditions.append(EventRecord.created_at <= as_utc(query.end))
        if query.event_type is not None:
            conditions.append(EventRecord.event_type == query.event_type.value)
        if query.product_id is not None:
            conditions.append(EventRecord.product_id == query.product_id)
        if query.require_product:
            conditions.append(EventRecord.product_id.is_not(None))
        if query.require_utm_source:
            conditions.append(EventRecord.utm_source.is_not(None))
        return conditions

    @staticmethod
    def _to_event(row: EventRecord) -> Optional[Event]:
        try:
            return Event.model_validate({
                "id": str(row.id),
                "store_id": str(row.store_id),
                "product_id": str(row.product_id) if row.product_id else None,
                "session_id": str(row.session_id) if row.session_id else None,
                "ip_hash": row.ip_hash,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "utm_source": row.utm_source,
                "utm_medium": row.utm_medium,
                "utm_campaign": row.utm_campaign,
                "utm_content": row.utm_content,
                "utm_term": row.utm_term,
                "created_at": as_utc(row.created_at),
            })
        except ValidationError as e:
            logger.warning(
                "Skipping malformed event row",
                event_id=str(row.id),
                event_type=row.event_type,
                errors=e.error_count(),
            )
            return None

    async def fetch_events(self, query: EventQuery) -> List[Event]:
        stmt = (
            select(EventRecord)
            .where(*self._conditions(query))
            .order_by(EventRecord.created_at)
        )
        try:
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise EventSourceError("Event query failed", details={"store_id": query.store_id}) from e

        events = [self._to_event(row) for row in rows]
        return [event for event in events if event is not None]

    async def count_events(self, query: EventQuery) -> int:
        stmt = select(func.count()).select_from(EventRecord).where(*self._conditions(query))
        try:
            async with session_scope(self._session_factory) as session:
                return (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as e:
            raise EventSourceError("Event count failed", details={"store_id": query.store_id}) from e

    async def get_products(self, product_ids: Sequence[str]) -> Dict[str, ProductInfo]:
        if not product_ids:
            return {}
        stmt = select(ProductRecord).where(ProductRecord.id.in_(list(product_ids)))
        try:
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise EventSourceError("Product lookup failed", details={"count": len(product_ids)}) from e

        return {
            str(row.id): ProductInfo(id=str(row.id), name=row.name, type=_product_type(row.type))
            for row in rows
        }

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        products = await self.get_products([product_id])
        return products.get(product_id)

    async def record_event(self, event: Event) -> None:
        """Append one event row"""
        record = EventRecord(
            store_id=event.store_id,
            product_id=event.product_id,
            session_id=event.session_id,
            ip_hash=event.ip_hash,
            event_type=event.event_type.value,
            event_data=event.event_data.model_dump(by_alias=True, exclude={"kind"}, exclude_none=True),
            utm_source=event.utm_source,
            utm_medium=event.utm_medium,
            utm_campaign=event.utm_campaign,
            utm_content=event.utm_content,
            utm_term=event.utm_term,
            created_at=as_utc(event.created_at),
        )
        if event.id:
            record.id = event.id

        try:
            async with session_scope(self._session_factory) as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise EventSourceError("Event insert failed", details={"store_id": event.store_id}) from e

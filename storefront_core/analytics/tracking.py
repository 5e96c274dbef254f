"""
Event Tracking

Validates storefront tracking calls and appends them to the event log:
- Page views
- Product clicks
- Lead submissions
- Purchases

Client IPs are never stored; only their SHA256 hash is.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, Optional
from uuid import UUID

import structlog
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from storefront_core.analytics.events import (
    Event,
    EventType,
    LeadSubmitPayload,
    PageViewPayload,
    ProductClickPayload,
    PurchasePayload,
)
from storefront_core.analytics.source import EventSink

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_ip(ip: str) -> str:
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()


def _uuid_field(message: str) -> Any:
    def check(value: Any) -> Any:
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise ValueError(message) from None

    return Annotated[UUID, BeforeValidator(check)]


StoreId = _uuid_field("Invalid store ID")
ProductId = _uuid_field("Invalid product ID")
SessionId = _uuid_field("Invalid session ID")


def _optional_str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


class TrackingResponse(BaseModel):
    """Tracking envelope"""
    success: bool
    error: Optional[str] = None


class _TrackInput(BaseModel):
    """Fields shared by every tracking call"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    store_id: StoreId
    session_id: Optional[SessionId] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None

    # UTM fields keep their snake_case names on the wire
    utm_source: Optional[str] = Field(default=None, alias="utm_source")
    utm_medium: Optional[str] = Field(default=None, alias="utm_medium")
    utm_campaign: Optional[str] = Field(default=None, alias="utm_campaign")
    utm_content: Optional[str] = Field(default=None, alias="utm_content")
    utm_term: Optional[str] = Field(default=None, alias="utm_term")

    def utm(self) -> Dict[str, Optional[str]]:
        return {
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
            "utm_content": self.utm_content,
            "utm_term": self.utm_term,
        }


def _check_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


EmailAddress = Annotated[str, AfterValidator(_check_email)]


class TrackPageViewInput(_TrackInput):
    pass


class TrackProductClickInput(_TrackInput):
    product_id: ProductId


class TrackLeadSubmissionInput(_TrackInput):
    product_id: ProductId
    email: Optional[EmailAddress] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


class TrackPurchaseInput(_TrackInput):
    product_id: ProductId
    amount: float
    currency: Optional[str] = None
    customer_email: EmailAddress
    customer_name: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v) != 3:
            raise ValueError("Currency must be 3 characters")
        return v.upper()


def _validation_message(error: ValidationError) -> str:
    """First validation message, without pydantic's 'Value error, ' prefix"""
    message = error.errors()[0]["msg"]
    return message.removeprefix("Value error, ")


class TrackingService:
    """
    Append-only tracking of storefront activity.

    Example:
        tracking = TrackingService(source)
        await tracking.track_page_view({"storeId": store_id}, ip="203.0.113.7")
    """

    def __init__(
        self,
        sink: EventSink,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        default_currency: str = "MYR",
    ):
        self.sink = sink
        self.clock = clock
        self.default_currency = default_currency

    async def _track(
        self,
        input_model: type,
        raw: Any,
        event_type: EventType,
        build_payload: Callable[[Any], Dict[str, Any]],
        ip: Optional[str],
        failure_message: str,
    ) -> TrackingResponse:
        try:
            data = raw if isinstance(raw, input_model) else input_model.model_validate(raw)
        except ValidationError as e:
            message = _validation_message(e)
            logger.info("Rejected tracking input", event_type=event_type.value, error=message)
            return TrackingResponse(success=False, error=message)

        event = Event(
            store_id=str(data.store_id),
            product_id=_optional_str(getattr(data, "product_id", None)),
            session_id=_optional_str(data.session_id),
            ip_hash=hash_ip(ip) if ip else None,
            event_type=event_type,
            event_data=build_payload(data),
            created_at=self.clock(),
            **data.utm(),
        )

        try:
            await self.sink.record_event(event)
        except Exception as e:
            logger.error(failure_message, store_id=str(data.store_id), error=str(e))
            return TrackingResponse(success=False, error=failure_message)

        logger.debug("Event tracked", event_type=event_type.value, store_id=str(data.store_id))
        return TrackingResponse(success=True)

    async def track_page_view(self, raw: Any, ip: Optional[str] = None) -> TrackingResponse:
        return await self._track(
            TrackPageViewInput,
            raw,
            EventType.PAGE_VIEW,
            lambda d: PageViewPayload(referrer=d.referrer, user_agent=d.user_agent).model_dump(),
            ip,
            "Failed to track page view",
        )

    async def track_product_click(self, raw: Any, ip: Optional[str] = None) -> TrackingResponse:
        return await self._track(
            TrackProductClickInput,
            raw,
            EventType.PRODUCT_CLICK,
            lambda d: ProductClickPayload(referrer=d.referrer).model_dump(),
            ip,
            "Failed to track product click",
        )

    async def track_lead_submission(self, raw: Any, ip: Optional[str] = None) -> TrackingResponse:
        return await self._track(
            TrackLeadSubmissionInput,
            raw,
            EventType.LEAD_SUBMIT,
            lambda d: LeadSubmitPayload(
                email=d.email, full_name=d.full_name, phone_number=d.phone_number
            ).model_dump(),
            ip,
            "Failed to track lead submission",
        )

    async def track_purchase(self, raw: Any, ip: Optional[str] = None) -> TrackingResponse:
        """Purchase amounts are recorded as the event's revenue."""
        return await self._track(
            TrackPurchaseInput,
            raw,
            EventType.PURCHASE,
            lambda d: PurchasePayload(
                revenue=d.amount,
                currency=d.currency or self.default_currency,
                customer_email=d.customer_email,
                customer_name=d.customer_name,
            ).model_dump(),
            ip,
            "Failed to track purchase",
        )

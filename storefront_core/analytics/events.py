"""
Analytics Event Model

Events are append-only rows of the storefront event log. The ``event_data``
payload is a tagged union keyed by ``event_type`` and is validated once, when
an Event is built, so aggregation code reads typed fields directly.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class EventType(str, Enum):
    """Storefront event types"""
    PAGE_VIEW = "page_view"
    PRODUCT_CLICK = "product_click"
    LEAD_SUBMIT = "lead_submit"
    PURCHASE = "purchase"


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class PageViewPayload(_Payload):
    kind: Literal["page_view"] = "page_view"
    referrer: Optional[str] = None
    user_agent: Optional[str] = None


class ProductClickPayload(_Payload):
    kind: Literal["product_click"] = "product_click"
    referrer: Optional[str] = None


class LeadSubmitPayload(_Payload):
    kind: Literal["lead_submit"] = "lead_submit"
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


class PurchasePayload(_Payload):
    """
    Purchase details.

    Older rows carry ``amount`` instead of ``revenue``; the amount is used as
    revenue when no revenue is recorded.
    """
    kind: Literal["purchase"] = "purchase"
    revenue: float = 0.0
    currency: str = "MYR"
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def revenue_from_amount(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("revenue") is None:
                data["revenue"] = data.get("amount") or 0.0
            if data.get("currency") is None:
                data.pop("currency", None)
        return data


EventPayload = Annotated[
    Union[PageViewPayload, ProductClickPayload, LeadSubmitPayload, PurchasePayload],
    Field(discriminator="kind"),
]


class Event(BaseModel):
    """A single immutable storefront event"""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    store_id: str
    product_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_hash: Optional[str] = None
    event_type: EventType
    event_data: EventPayload

    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None

    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def tag_payload(cls, data: Any) -> Any:
        """Attach the event type to the raw payload so the union can discriminate"""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        event_type = data.get("event_type")
        if isinstance(event_type, EventType):
            event_type = event_type.value

        payload = data.get("event_data")
        if payload is None:
            payload = {}
        if isinstance(payload, dict):
            data["event_data"] = {**payload, "kind": event_type}
        return data

    @model_validator(mode="after")
    def payload_matches_type(self) -> "Event":
        if self.event_data.kind != self.event_type.value:
            raise ValueError(
                f"event_data of kind '{self.event_data.kind}' does not match event_type '{self.event_type.value}'"
            )
        return self

    @field_validator("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term", "product_id", "session_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def revenue(self) -> float:
        """Revenue carried by the event; zero for anything but purchases"""
        if isinstance(self.event_data, PurchasePayload):
            return self.event_data.revenue
        return 0.0

"""Product event envelope and wire codec.

Every message on the product exchange is one JSON document:

    {
      "event_id": "9f0c...",          # uuid4 hex, generated when the event is built
      "event_kind": "product_created",
      "timestamp": "2025-01-01T00:00:00.000001Z",
      "subject_id": 7,                 # product id, 0 for category events
      "payload": {...} | null          # shape fixed by event_kind
    }

The envelope is a tagged union: one model per kind, discriminated on
``event_kind``, so a kind can only ever carry its own payload shape.
``decode_event`` separates bodies that are not envelopes at all
(``EventDecodeError``) from envelopes of a kind this build does not know
(``UnknownEventKindError``) so the consumer can skip the latter.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from product_service.core.exceptions import EventDecodeError, UnknownEventKindError


class EventKind(str, Enum):
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_DELETED = "product_deleted"
    CATEGORY_CREATED = "category_created"
    IMAGE_ADDED = "image_added"
    ATTRIBUTE_ADDED = "attribute_added"


EVENT_KINDS = frozenset(kind.value for kind in EventKind)


_clock_lock = threading.Lock()
_last_timestamp: Optional[datetime] = None


def new_event_id() -> str:
    return uuid.uuid4().hex


def event_timestamp() -> datetime:
    """Return a UTC timestamp strictly greater than the previous one in this process."""
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


# -------------------------
# Payload shapes
# -------------------------


class ProductSnapshot(BaseModel):
    """Product state as committed at the time of the mutation."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    description: str = ""
    price: float
    stock: int
    category_id: int
    sku: Optional[str] = ""
    image_url: Optional[str] = ""


class CategoryRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: int


class ImageDescriptor(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    image_url: str
    is_primary: bool = False


class AttributeDescriptor(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    value: str


# -------------------------
# Envelopes
# -------------------------


class EventEnvelope(BaseModel):
    """Fields shared by every event kind."""

    # Unknown fields are ignored so newer producers do not break older consumers
    model_config = ConfigDict(frozen=True, extra="ignore")

    event_id: str = Field(default_factory=new_event_id, min_length=1)
    timestamp: datetime = Field(default_factory=event_timestamp)
    subject_id: int = 0


class ProductCreated(EventEnvelope):
    event_kind: Literal["product_created"] = "product_created"
    payload: ProductSnapshot


class ProductUpdated(EventEnvelope):
    event_kind: Literal["product_updated"] = "product_updated"
    payload: ProductSnapshot


class ProductDeleted(EventEnvelope):
    event_kind: Literal["product_deleted"] = "product_deleted"
    payload: None = None


class CategoryCreated(EventEnvelope):
    event_kind: Literal["category_created"] = "category_created"
    payload: CategoryRef


class ImageAdded(EventEnvelope):
    event_kind: Literal["image_added"] = "image_added"
    payload: ImageDescriptor


class AttributeAdded(EventEnvelope):
    event_kind: Literal["attribute_added"] = "attribute_added"
    payload: AttributeDescriptor


Event = Annotated[
    Union[
        ProductCreated,
        ProductUpdated,
        ProductDeleted,
        CategoryCreated,
        ImageAdded,
        AttributeAdded,
    ],
    Field(discriminator="event_kind"),
]

_event_adapter: TypeAdapter[Any] = TypeAdapter(Event)

ENVELOPE_FIELDS = ("event_id", "timestamp", "subject_id", "payload")


# -------------------------
# Builders
# -------------------------


def product_created(product: Any) -> ProductCreated:
    snapshot = ProductSnapshot.model_validate(product)
    return ProductCreated(subject_id=snapshot.id, payload=snapshot)


def product_updated(product: Any) -> ProductUpdated:
    snapshot = ProductSnapshot.model_validate(product)
    return ProductUpdated(subject_id=snapshot.id, payload=snapshot)


def product_deleted(product_id: int) -> ProductDeleted:
    return ProductDeleted(subject_id=product_id)


def category_created(category_id: int) -> CategoryCreated:
    return CategoryCreated(subject_id=0, payload=CategoryRef(category_id=category_id))


def image_added(product_id: int, image: Any) -> ImageAdded:
    return ImageAdded(subject_id=product_id, payload=ImageDescriptor.model_validate(image))


def attribute_added(product_id: int, attribute: Any) -> AttributeAdded:
    return AttributeAdded(
        subject_id=product_id, payload=AttributeDescriptor.model_validate(attribute)
    )


# -------------------------
# Wire codec
# -------------------------


def encode_event(event: EventEnvelope) -> bytes:
    """Serialize an event to its UTF-8 JSON wire form."""
    return event.model_dump_json().encode("utf-8")


def decode_event(body: bytes | str) -> Event:
    """Parse wire bytes back into a typed event.

    Raises:
        UnknownEventKindError: well-formed envelope with a kind outside ``EventKind``.
        EventDecodeError: anything else that is not a valid envelope.
    """
    try:
        document = json.loads(body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise EventDecodeError(f"Message body is not valid JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise EventDecodeError("Message body is not a JSON object")

    kind = document.get("event_kind")
    if not isinstance(kind, str) or not kind:
        raise EventDecodeError("Message body has no event_kind")
    if kind not in EVENT_KINDS:
        event_id = document.get("event_id")
        raise UnknownEventKindError(kind, event_id if isinstance(event_id, str) else None)

    # Builder defaults must not fill in identity fields on the receiving side
    missing = [field for field in ENVELOPE_FIELDS if field not in document]
    if missing:
        raise EventDecodeError(f"Invalid {kind} envelope: missing {', '.join(missing)}")

    try:
        return _event_adapter.validate_python(document)
    except ValidationError as exc:
        raise EventDecodeError(f"Invalid {kind} envelope: {exc.error_count()} error(s)") from exc

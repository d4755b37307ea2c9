"""Cart lifecycle events and the sinks that observe them."""
import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import List, Protocol

from cartapi.metrics import CART_EVENTS

logger = logging.getLogger(__name__)


@dataclass
class CartEvent:
    cart_key: str

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass
class ItemAdded(CartEvent):
    item_key: str
    product_id: int
    variation_id: int
    quantity: int


@dataclass
class ItemRemoved(CartEvent):
    item_key: str
    product_id: int


@dataclass
class ItemRestored(CartEvent):
    item_key: str
    product_id: int


@dataclass
class ItemQuantityChanged(CartEvent):
    item_key: str
    old_quantity: int
    new_quantity: int


@dataclass
class CouponApplied(CartEvent):
    code: str


@dataclass
class CouponRemoved(CartEvent):
    code: str
    reason: str = "requested"


@dataclass
class CartCleared(CartEvent):
    pass


@dataclass
class TotalsRecalculated(CartEvent):
    total: Decimal
    total_tax: Decimal


class CartEventSink(Protocol):
    def emit(self, event: CartEvent) -> None:
        ...


class LoggingEventSink:
    def emit(self, event: CartEvent) -> None:
        payload = {"event": event.name, **asdict(event)}
        logger.debug("cart event %s", payload)


class MetricsEventSink:
    def emit(self, event: CartEvent) -> None:
        CART_EVENTS.labels(event.name).inc()


@dataclass
class RecordingEventSink:
    """Keeps every event in memory; handy for inspection."""

    events: List[CartEvent] = field(default_factory=list)

    def emit(self, event: CartEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]


class CompositeEventSink:
    def __init__(self, *sinks):
        self.sinks = list(sinks)

    def emit(self, event: CartEvent) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception("Event sink %s failed on %s", type(sink).__name__, event.name)

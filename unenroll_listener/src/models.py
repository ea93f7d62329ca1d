"""Typed views of the Shopify webhook payloads and of per-item outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class Topic(Enum):
    ORDER_CANCELLED = "order_cancelled"
    ORDER_UPDATED_CANCELLED = "order_updated_cancelled"
    REFUND_CREATED = "refund_created"
    OTHER = "other"


ORDERS_CANCELLED = "orders/cancelled"
ORDERS_UPDATED = "orders/updated"
REFUND_TOPICS = ("refunds/create", "refunds/created")


def _str_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _selling_plan_id(item: Dict) -> Optional[str]:
    allocation = item.get("selling_plan_allocation") or {}
    plan = allocation.get("selling_plan") or {}
    return _str_id(plan.get("id") or allocation.get("selling_plan_id") or item.get("selling_plan_id"))


def _properties(raw: Any) -> Tuple[Tuple[str, Any], ...]:
    # Shopify sends a list of {name, value}; older checkouts sent a plain dict.
    if isinstance(raw, dict):
        return tuple((str(k), v) for k, v in raw.items())
    pairs = []
    for prop in raw or []:
        if isinstance(prop, dict) and prop.get("name") is not None:
            pairs.append((str(prop["name"]), prop.get("value")))
    return tuple(pairs)


@dataclass(frozen=True)
class LineItem:
    id: Optional[str]
    sku: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    properties: Tuple[Tuple[str, Any], ...] = ()
    selling_plan_id: Optional[str] = None
    title: Optional[str] = None
    quantity: Optional[int] = None

    @classmethod
    def from_payload(cls, item: Dict) -> "LineItem":
        sku = item.get("sku")
        return cls(
            id=_str_id(item.get("id")),
            sku=(sku.strip() or None) if isinstance(sku, str) else None,
            product_id=_str_id(item.get("product_id")),
            variant_id=_str_id(item.get("variant_id")),
            properties=_properties(item.get("properties")),
            selling_plan_id=_selling_plan_id(item),
            title=item.get("title") or item.get("name"),
            quantity=item.get("quantity"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "sku": self.sku,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class RefundLineItemRef:
    line_item_id: Optional[str]
    line_item: Optional[LineItem] = None

    @classmethod
    def from_payload(cls, ref: Dict) -> "RefundLineItemRef":
        embedded = ref.get("line_item")
        return cls(
            line_item_id=_str_id(ref.get("line_item_id")),
            line_item=LineItem.from_payload(embedded) if isinstance(embedded, dict) and embedded else None,
        )


@dataclass(frozen=True)
class ProductMapEntry:
    product_id: str
    product_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"product_id": self.product_id, "product_type": self.product_type}


@dataclass(frozen=True)
class InboundEvent:
    """One parsed delivery. ``payload`` is kept for the email cascade."""

    topic: Topic
    raw_topic: str
    payload: Dict[str, Any]
    order_id: Optional[str] = None
    line_items: Tuple[LineItem, ...] = ()
    refund_lines: Tuple[RefundLineItemRef, ...] = ()


def classify_topic(raw_topic: Optional[str], payload: Dict) -> Topic:
    topic = (raw_topic or "").strip().lower()
    if topic == ORDERS_CANCELLED:
        return Topic.ORDER_CANCELLED
    if topic == ORDERS_UPDATED and payload.get("cancelled_at"):
        return Topic.ORDER_UPDATED_CANCELLED
    if topic in REFUND_TOPICS:
        return Topic.REFUND_CREATED
    return Topic.OTHER


def parse_event(raw_topic: Optional[str], payload: Dict) -> InboundEvent:
    topic = classify_topic(raw_topic, payload)
    raw_topic = raw_topic or ""

    if topic is Topic.REFUND_CREATED:
        refs = tuple(
            RefundLineItemRef.from_payload(ref)
            for ref in payload.get("refund_line_items") or []
            if isinstance(ref, dict)
        )
        return InboundEvent(
            topic=topic,
            raw_topic=raw_topic,
            payload=payload,
            order_id=_str_id(payload.get("order_id")),
            refund_lines=refs,
        )

    if topic in (Topic.ORDER_CANCELLED, Topic.ORDER_UPDATED_CANCELLED):
        items = tuple(
            LineItem.from_payload(item)
            for item in payload.get("line_items") or []
            if isinstance(item, dict)
        )
        return InboundEvent(
            topic=topic,
            raw_topic=raw_topic,
            payload=payload,
            order_id=_str_id(payload.get("id") or payload.get("order_id")),
            line_items=items,
        )

    return InboundEvent(topic=topic, raw_topic=raw_topic, payload=payload)


@dataclass(frozen=True)
class Unenrolled:
    line_item: LineItem
    mapping: ProductMapEntry
    response: Any = None
    status: str = field(default="unenrolled", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "item": self.line_item.to_dict(),
            "lw": self.mapping.to_dict(),
            "response": self.response,
        }


@dataclass(frozen=True)
class Unmapped:
    line_item: LineItem
    reason: str = "no_mapping"
    status: str = field(default="unmapped", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "item": self.line_item.to_dict(),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Failed:
    line_item: LineItem
    mapping: ProductMapEntry
    error: str
    status: str = field(default="failed", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "item": self.line_item.to_dict(),
            "lw": self.mapping.to_dict(),
            "error": self.error,
        }


ActionResult = Union[Unenrolled, Unmapped, Failed]


def line_items_from_order(order: Optional[Dict]) -> List[LineItem]:
    if not order:
        return []
    return [LineItem.from_payload(item) for item in order.get("line_items") or [] if isinstance(item, dict)]

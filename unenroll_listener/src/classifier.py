"""Decide which line items of a delivery need an unenroll, and for whom."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..clients.shopify_admin import ShopifyAdminClient
from .models import InboundEvent, LineItem, Topic
from .refunds import needs_order, reconstruct_line_items

ACTIONABLE = "actionable"
IGNORED = "ignored"
NO_EMAIL = "no_email"

# Tried in order against the payload, then against a fetched order.
EMAIL_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("email",),
    ("customer", "email"),
    ("order", "email"),
    ("order", "customer", "email"),
    ("contact_email",),
)


@dataclass(frozen=True)
class Classification:
    status: str
    topic: str
    email: Optional[str] = None
    line_items: List[LineItem] = field(default_factory=list)


def _dig(data: Any, path: Tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def find_email(data: Optional[Dict]) -> Optional[str]:
    if not data:
        return None
    for path in EMAIL_PATHS:
        value = _dig(data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class EventClassifier:
    def __init__(self, shopify: ShopifyAdminClient):
        self.shopify = shopify

    def classify(self, event: InboundEvent) -> Classification:
        if event.topic is Topic.OTHER:
            return Classification(IGNORED, event.raw_topic)

        order = None
        order_fetched = False
        email = find_email(event.payload)
        if not email and event.order_id:
            logging.info(f"No email on {event.raw_topic} payload, fetching order {event.order_id}")
            order = self.shopify.get_order(event.order_id)
            order_fetched = True
            email = find_email(order)
        if not email:
            return Classification(NO_EMAIL, event.raw_topic)

        if event.topic is Topic.REFUND_CREATED:
            if not order_fetched and event.order_id and needs_order(event.refund_lines):
                order = self.shopify.get_order(event.order_id)
            items = reconstruct_line_items(event.refund_lines, order)
        else:
            items = list(event.line_items)

        return Classification(ACTIONABLE, event.raw_topic, email, items)

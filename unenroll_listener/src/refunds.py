"""Rebuild line items for ``refunds/create`` deliveries."""
import logging
from typing import Dict, Iterable, List, Optional

from .models import LineItem, RefundLineItemRef, line_items_from_order


def needs_order(refs: Iterable[RefundLineItemRef]) -> bool:
    return any(ref.line_item is None for ref in refs)


def reconstruct_line_items(refs: Iterable[RefundLineItemRef], order: Optional[Dict] = None) -> List[LineItem]:
    """Return one line item per refund line, in refund order.

    Refund lines that embed their line item are used as-is. Bare
    ``line_item_id`` references are joined against ``order``; references
    that cannot be joined are dropped.
    """
    order_items = {item.id: item for item in line_items_from_order(order) if item.id}
    items = []
    for ref in refs:
        if ref.line_item is not None:
            items.append(ref.line_item)
            continue
        joined = order_items.get(ref.line_item_id) if ref.line_item_id else None
        if joined is None:
            logging.debug(f"Refund line {ref.line_item_id} has no matching order line item, skipping")
            continue
        items.append(joined)
    return items

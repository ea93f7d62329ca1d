"""Resolve a Shopify line item to the LearnWorlds product it grants.

Strategies run cheapest first and the first hit wins:

1. line item properties written at checkout
2. exact SKU in the product map
3. case-insensitive SKU
4. ``product:<id>`` then ``variant:<id>`` map keys
5. ``learnworlds`` metafields on the variant, then the product
"""
import logging
from typing import Dict, Iterable, Optional, Tuple

from ..clients.shopify_admin import AdminLookup, ShopifyAdminClient, metafields_of
from .models import LineItem, ProductMapEntry
from .product_map import PRODUCT_KEY_PREFIX, VARIANT_KEY_PREFIX, ProductMap

# Earlier aliases take precedence; names are compared case-insensitively.
PRODUCT_ID_PROPERTY_ALIASES = (
    "_lw_product_id",
    "lw_product_id",
    "_learnworlds_product_id",
    "learnworlds_product_id",
    "LearnWorlds Product ID",
)
PRODUCT_TYPE_PROPERTY_ALIASES = (
    "_lw_product_type",
    "lw_product_type",
    "_learnworlds_product_type",
    "learnworlds_product_type",
    "LearnWorlds Product Type",
)
DEFAULT_PRODUCT_TYPE = "course"

METAFIELD_NAMESPACE = "learnworlds"
METAFIELD_PRODUCT_ID_KEY = "product_id"
METAFIELD_PRODUCT_TYPE_KEY = "product_type"


class ResolutionCache:
    """Metafield outcomes for one delivery, keyed ``variant:<id>`` / ``product:<id>``.

    A stored ``None`` is a remembered miss. Create one per request.
    """

    def __init__(self):
        self._entries: Dict[str, Optional[ProductMapEntry]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self):
        return len(self._entries)

    def get(self, key: str) -> Optional[ProductMapEntry]:
        return self._entries.get(key)

    def put(self, key: str, entry: Optional[ProductMapEntry]) -> None:
        self._entries[key] = entry


def _property_value(properties: Iterable[Tuple[str, object]], aliases) -> Optional[str]:
    by_name = {}
    for name, value in properties:
        key = name.strip().lower()
        if key not in by_name and value not in (None, ""):
            by_name[key] = str(value).strip()
    for alias in aliases:
        value = by_name.get(alias.lower())
        if value:
            return value
    return None


def from_properties(item: LineItem) -> Optional[ProductMapEntry]:
    product_id = _property_value(item.properties, PRODUCT_ID_PROPERTY_ALIASES)
    if not product_id:
        return None
    product_type = _property_value(item.properties, PRODUCT_TYPE_PROPERTY_ALIASES) or DEFAULT_PRODUCT_TYPE
    return ProductMapEntry(product_id=product_id, product_type=product_type)


def from_metafields(fields) -> Optional[ProductMapEntry]:
    values = {}
    for field in fields:
        if not isinstance(field, dict) or field.get("namespace") != METAFIELD_NAMESPACE:
            continue
        values.setdefault(field.get("key"), field.get("value"))

    product_id = values.get(METAFIELD_PRODUCT_ID_KEY)
    product_type = values.get(METAFIELD_PRODUCT_TYPE_KEY)
    if product_id and product_type:
        return ProductMapEntry(product_id=str(product_id), product_type=str(product_type))
    return None


class LineItemResolver:
    def __init__(self, product_map: ProductMap, shopify: ShopifyAdminClient):
        self.product_map = product_map
        self.shopify = shopify

    def resolve(self, item: LineItem, cache: ResolutionCache) -> Optional[ProductMapEntry]:
        entry = from_properties(item)
        if entry:
            logging.debug(f"Line item {item.id} resolved from properties")
            return entry

        entry = (
            self.product_map.by_sku(item.sku)
            or self.product_map.by_sku_casefold(item.sku)
            or self.product_map.by_product(item.product_id)
            or self.product_map.by_variant(item.variant_id)
        )
        if entry:
            logging.debug(f"Line item {item.id} resolved from the product map")
            return entry

        if item.variant_id:
            entry = self._from_remote(
                f"{VARIANT_KEY_PREFIX}{item.variant_id}",
                cache,
                lambda: self.shopify.get_variant_metafields(item.variant_id),
            )
            if entry:
                return entry

        if item.product_id:
            entry = self._from_remote(
                f"{PRODUCT_KEY_PREFIX}{item.product_id}",
                cache,
                lambda: self.shopify.get_product_metafields(item.product_id),
            )
            if entry:
                return entry

        logging.info(f"No LearnWorlds mapping for line item {item.id} (sku={item.sku!r})")
        return None

    def _from_remote(self, key: str, cache: ResolutionCache, lookup) -> Optional[ProductMapEntry]:
        if key in cache:
            return cache.get(key)

        result: AdminLookup = lookup()
        entry = from_metafields(metafields_of(result)) if result.found else None
        if not result.found:
            logging.info(f"Metafield lookup for {key} returned {result.status.value}")
        # Failed lookups are remembered as misses too: one attempt per key per delivery.
        cache.put(key, entry)
        return entry

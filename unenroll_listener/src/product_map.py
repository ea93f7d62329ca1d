"""Operator-curated map from Shopify identifiers to LearnWorlds products."""
import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from ..config import Settings, resolve_path
from ..utils.errors import ConfigurationError
from .models import ProductMapEntry

PRODUCT_KEY_PREFIX = "product:"
VARIANT_KEY_PREFIX = "variant:"


def _entry_from_value(key: str, value) -> Optional[ProductMapEntry]:
    if not isinstance(value, dict):
        logging.warning(f"Product map entry {key!r} is not an object, skipping")
        return None
    product_id = value.get("productId") or value.get("product_id")
    product_type = value.get("productType") or value.get("product_type")
    if not product_id or not product_type:
        logging.warning(f"Product map entry {key!r} needs productId and productType, skipping")
        return None
    return ProductMapEntry(product_id=str(product_id), product_type=str(product_type))


class ProductMap:
    """Read-only lookups by SKU, ``product:<id>`` and ``variant:<id>``."""

    def __init__(self, entries: Mapping[str, ProductMapEntry]):
        self._entries: Dict[str, ProductMapEntry] = dict(entries)
        self._by_lower_key: Dict[str, ProductMapEntry] = {}
        for key, entry in self._entries.items():
            # First spelling wins when two keys differ only by case.
            self._by_lower_key.setdefault(key.lower(), entry)

    @classmethod
    def from_raw(cls, raw: Mapping) -> "ProductMap":
        entries = {}
        for key, value in raw.items():
            entry = _entry_from_value(str(key), value)
            if entry:
                entries[str(key).strip()] = entry
        return cls(entries)

    def __len__(self):
        return len(self._entries)

    def by_sku(self, sku: Optional[str]) -> Optional[ProductMapEntry]:
        if not sku:
            return None
        return self._entries.get(sku)

    def by_sku_casefold(self, sku: Optional[str]) -> Optional[ProductMapEntry]:
        if not sku:
            return None
        return self._by_lower_key.get(sku.lower())

    def by_product(self, product_id: Optional[str]) -> Optional[ProductMapEntry]:
        if not product_id:
            return None
        return self._entries.get(f"{PRODUCT_KEY_PREFIX}{product_id}")

    def by_variant(self, variant_id: Optional[str]) -> Optional[ProductMapEntry]:
        if not variant_id:
            return None
        return self._entries.get(f"{VARIANT_KEY_PREFIX}{variant_id}")


class ProductMapSource:
    """Where the product map comes from. Loaded once at startup."""

    def load(self) -> ProductMap:
        raise NotImplementedError


class InlineProductMapSource(ProductMapSource):
    def __init__(self, raw_json: str):
        self.raw_json = raw_json

    def load(self) -> ProductMap:
        try:
            raw = json.loads(self.raw_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"LW_PRODUCT_MAP_JSON is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError("LW_PRODUCT_MAP_JSON must be a JSON object")
        product_map = ProductMap.from_raw(raw)
        logging.info(f"Loaded {len(product_map)} product map entries from LW_PRODUCT_MAP_JSON")
        return product_map


class FileProductMapSource(ProductMapSource):
    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> ProductMap:
        if not self.path.exists():
            logging.warning(f"No product map found at {self.path}; only properties and metafields will resolve")
            return ProductMap({})
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Product map {self.path} is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Product map {self.path} must be a JSON object")
        product_map = ProductMap.from_raw(raw)
        logging.info(f"Loaded {len(product_map)} product map entries from {self.path}")
        return product_map


def select_product_map_source(settings: Settings) -> ProductMapSource:
    """Inline JSON wins over the file when both are configured."""
    if settings.product_map_json:
        return InlineProductMapSource(settings.product_map_json)
    return FileProductMapSource(resolve_path(settings.product_map_file))

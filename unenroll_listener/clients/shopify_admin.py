"""Read-only Shopify Admin REST lookups used while resolving line items."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import certifi
import requests

from ..config import Settings


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class AdminLookup:
    """Outcome of one Admin API GET.

    ``NOT_FOUND`` means Shopify answered definitively (404); ``FAILED`` covers
    transport errors, other non-success statuses, undecodable bodies and an
    unconfigured client.
    """

    status: LookupStatus
    data: Optional[Dict[str, Any]] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND

    def get(self, key: str):
        if not self.found or not isinstance(self.data, dict):
            return None
        return self.data.get(key)


NOT_CONFIGURED = AdminLookup(LookupStatus.FAILED)


class ShopifyAdminClient:
    def __init__(self, store_domain: Optional[str], access_token: Optional[str],
                 api_version: str = "2023-10", timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.store_domain = store_domain
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyAdminClient":
        return cls(
            store_domain=settings.shopify_store_domain,
            access_token=settings.shopify_admin_access_token,
            api_version=settings.shopify_api_version,
            timeout=settings.http_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.store_domain and self.access_token)

    @property
    def base_url(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}"

    def fetch(self, path: str) -> AdminLookup:
        if not self.configured:
            logging.debug(f"Shopify Admin API not configured, skipping GET {path}")
            return NOT_CONFIGURED

        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Accept": "application/json",
        }
        try:
            response = self.session.request(
                "GET",
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.timeout,
                verify=certifi.where(),
            )
        except requests.exceptions.RequestException as e:
            logging.error(f"Shopify Admin request failed for {path}: {e}")
            return AdminLookup(LookupStatus.FAILED)

        if response.status_code == 404:
            logging.info(f"Shopify Admin returned 404 for {path}")
            return AdminLookup(LookupStatus.NOT_FOUND)
        if not response.ok:
            logging.error(f"Shopify Admin request for {path} failed with status {response.status_code}: {response.text}")
            return AdminLookup(LookupStatus.FAILED)
        try:
            data = response.json()
        except ValueError:
            logging.error(f"Shopify Admin response for {path} could not be decoded as JSON")
            return AdminLookup(LookupStatus.FAILED)

        return AdminLookup(LookupStatus.FOUND, data if isinstance(data, dict) else {})

    def get_order(self, order_id) -> Optional[Dict[str, Any]]:
        return self.fetch(f"/orders/{order_id}.json").get("order")

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        return self.fetch(f"/products/{product_id}.json").get("product")

    def get_variant_metafields(self, variant_id) -> AdminLookup:
        return self.fetch(f"/variants/{variant_id}/metafields.json")

    def get_product_metafields(self, product_id) -> AdminLookup:
        return self.fetch(f"/products/{product_id}/metafields.json")


def metafields_of(lookup: AdminLookup) -> List[Dict[str, Any]]:
    fields = lookup.get("metafields")
    return fields if isinstance(fields, list) else []

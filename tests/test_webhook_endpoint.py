import json
import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from unenroll_listener.clients.shopify_admin import AdminLookup, LookupStatus
from unenroll_listener.config import Settings
from unenroll_listener.main import create_app
from unenroll_listener.src.processor import build_processor
from unenroll_listener.src.product_map import ProductMap
from unenroll_listener.utils.errors import ConfigurationError, EnrollmentError
from unenroll_listener.utils.signature import compute_hmac

SECRET = "whsec_test"
SETTINGS = Settings(webhook_secret=SECRET, lw_api_base="https://lw.test/api/v2", lw_client="c", lw_token="t")
PRODUCT_MAP = ProductMap.from_raw({
    "SKU123": {"productId": "course-1", "productType": "course"},
    "SKU456": {"productId": "course-2", "productType": "course"},
})


class FakeShopify:
    def __init__(self, orders=None):
        self.orders = orders or {}
        self.calls = []

    def get_order(self, order_id):
        self.calls.append(("order", order_id))
        return self.orders.get(order_id)

    def get_variant_metafields(self, variant_id):
        self.calls.append(("variant", variant_id))
        return AdminLookup(LookupStatus.NOT_FOUND)

    def get_product_metafields(self, product_id):
        self.calls.append(("product", product_id))
        return AdminLookup(LookupStatus.NOT_FOUND)


class FakeLearnWorlds:
    def __init__(self, failing=(), configured=True):
        self.failing = set(failing)
        self.configured = configured
        self.calls = []

    def ensure_configured(self):
        if not self.configured:
            raise ConfigurationError("Missing LearnWorlds credentials: LW_TOKEN")

    def unenroll(self, email, product_id, product_type):
        self.calls.append((email, product_id, product_type))
        if product_id in self.failing:
            raise EnrollmentError(500, "upstream exploded")
        return {"success": True}


@pytest.fixture()
def shopify():
    return FakeShopify()


@pytest.fixture()
def learnworlds():
    return FakeLearnWorlds()


@pytest.fixture()
def client(shopify, learnworlds):
    processor = build_processor(SETTINGS, product_map=PRODUCT_MAP, shopify=shopify, learnworlds=learnworlds)
    return TestClient(create_app(SETTINGS, processor))


def post(client, topic, payload, signature=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {
        "X-Shopify-Topic": topic,
        "X-Shopify-Hmac-Sha256": signature if signature is not None else compute_hmac(body, SECRET),
        "Content-Type": "application/json",
    }
    return client.post("/api/shopify-webhook", content=body, headers=headers)


def cancelled_order(*skus, email="learner@example.com"):
    return {
        "id": 1001,
        "email": email,
        "cancelled_at": "2024-05-01T10:00:00Z",
        "line_items": [
            {"id": 10 + i, "sku": sku, "product_id": 500 + i, "variant_id": 600 + i, "title": f"Course {sku}"}
            for i, sku in enumerate(skus)
        ],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_cancellation_unenrolls_mapped_item(client, learnworlds):
    response = post(client, "orders/cancelled", cancelled_order("SKU123"))
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["topic"] == "orders/cancelled"
    assert body["email"] == "learner@example.com"
    assert len(body["actions"]) == 1
    action = body["actions"][0]
    assert action["status"] == "unenrolled"
    assert action["lw"] == {"product_id": "course-1", "product_type": "course"}
    assert action["item"]["sku"] == "SKU123"
    assert action["response"] == {"success": True}
    assert learnworlds.calls == [("learner@example.com", "course-1", "course")]


def test_refund_reference_unmapped(learnworlds):
    shopify = FakeShopify({"2002": {"id": 2002, "email": "buyer@example.com", "line_items": [
        {"id": 77, "sku": "UNKNOWN", "product_id": 9, "variant_id": 8},
    ]}})
    processor = build_processor(SETTINGS, product_map=PRODUCT_MAP, shopify=shopify, learnworlds=learnworlds)
    client = TestClient(create_app(SETTINGS, processor))

    response = post(client, "refunds/create", {
        "id": 3003,
        "order_id": 2002,
        "refund_line_items": [{"id": 1, "line_item_id": 77, "quantity": 1}],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert [a["status"] for a in body["actions"]] == ["unmapped"]
    assert body["actions"][0]["reason"] == "no_mapping"
    assert body["actions"][0]["item"]["id"] == "77"
    assert learnworlds.calls == []
    assert shopify.calls == [("order", "2002"), ("variant", "8"), ("product", "9")]


def test_tampered_signature_rejected_without_remote_calls(client, shopify, learnworlds):
    body = json.dumps(cancelled_order("SKU123")).encode("utf-8")
    signature = compute_hmac(body + b" ", SECRET)
    response = post(client, "orders/cancelled", body, signature=signature)
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "HMAC verification failed"}
    assert shopify.calls == []
    assert learnworlds.calls == []


def test_missing_signature_rejected(client):
    response = client.post("/api/shopify-webhook", content=b"{}", headers={"X-Shopify-Topic": "orders/cancelled"})
    assert response.status_code == 401


def test_one_failed_revocation_does_not_abort_batch(shopify):
    learnworlds = FakeLearnWorlds(failing={"course-1"})
    processor = build_processor(SETTINGS, product_map=PRODUCT_MAP, shopify=shopify, learnworlds=learnworlds)
    client = TestClient(create_app(SETTINGS, processor))

    response = post(client, "orders/cancelled", cancelled_order("SKU123", "SKU456"))
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["topic"] == "orders/cancelled"
    assert [a["status"] for a in body["actions"]] == ["failed", "unenrolled"]
    assert body["actions"][0]["error"] == "LearnWorlds error: 500 - upstream exploded"
    assert body["actions"][1]["lw"]["product_id"] == "course-2"
    assert len(learnworlds.calls) == 2


def test_actions_keep_line_item_order(client):
    response = post(client, "orders/cancelled", cancelled_order("SKU456", "NOPE", "sku123"))
    actions = response.json()["actions"]
    assert [a["item"]["sku"] for a in actions] == ["SKU456", "NOPE", "sku123"]
    assert [a["status"] for a in actions] == ["unenrolled", "unmapped", "unenrolled"]


@pytest.mark.parametrize("topic", ["orders/create", "products/update", "orders/paid", "refunds/updated"])
def test_unhandled_topics_ignored(client, shopify, learnworlds, topic):
    response = post(client, topic, cancelled_order("SKU123"))
    assert response.status_code == 200
    assert response.json() == {"ok": True, "ignored": topic}
    assert shopify.calls == []
    assert learnworlds.calls == []


def test_orders_updated_needs_cancellation(client, learnworlds):
    payload = cancelled_order("SKU123")
    payload["cancelled_at"] = None
    assert post(client, "orders/updated", payload).json() == {"ok": True, "ignored": "orders/updated"}

    payload["cancelled_at"] = "2024-05-01T10:00:00Z"
    body = post(client, "orders/updated", payload).json()
    assert body["topic"] == "orders/updated"
    assert [a["status"] for a in body["actions"]] == ["unenrolled"]
    assert len(learnworlds.calls) == 1


def test_no_email_is_skipped(client, shopify, learnworlds):
    response = post(client, "orders/cancelled", cancelled_order("SKU123", email=None))
    assert response.status_code == 200
    assert response.json() == {"ok": True, "skipped": "no_email", "topic": "orders/cancelled"}
    assert shopify.calls == [("order", "1001")]
    assert learnworlds.calls == []


def test_malformed_json_is_500(client):
    response = post(client, "orders/cancelled", b"{not json")
    assert response.status_code == 500
    assert response.json()["ok"] is False


def test_non_object_json_is_500(client):
    response = post(client, "orders/cancelled", b"[1, 2, 3]")
    assert response.status_code == 500


def test_missing_credentials_fail_whole_request(shopify):
    learnworlds = FakeLearnWorlds(configured=False)
    processor = build_processor(SETTINGS, product_map=PRODUCT_MAP, shopify=shopify, learnworlds=learnworlds)
    client = TestClient(create_app(SETTINGS, processor))

    response = post(client, "orders/cancelled", cancelled_order("SKU123"))
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "Missing LearnWorlds credentials: LW_TOKEN"}
    assert learnworlds.calls == []


def test_empty_line_items_still_structured(client):
    body = post(client, "orders/cancelled", cancelled_order()).json()
    assert body == {"ok": True, "topic": "orders/cancelled", "email": "learner@example.com", "actions": []}


def test_alias_route(client):
    body = json.dumps(cancelled_order("SKU123")).encode("utf-8")
    response = client.post("/webhooks/shopify", content=body, headers={
        "X-Shopify-Topic": "orders/cancelled",
        "X-Shopify-Hmac-Sha256": compute_hmac(body, SECRET),
    })
    assert response.status_code == 200
    assert response.json()["actions"][0]["status"] == "unenrolled"


def test_unexpected_error_is_500(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("resolver crashed")

    monkeypatch.setattr(client.app.state.processor.resolver, "resolve", explode)
    response = post(client, "orders/cancelled", cancelled_order("SKU123"))
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "resolver crashed"}


def test_importing_main_reads_no_settings(monkeypatch):
    import importlib
    from unenroll_listener import main

    monkeypatch.setenv("LW_PRODUCT_MAP_JSON", "{not json")
    reloaded = importlib.reload(main)
    assert not hasattr(reloaded, "app")


def test_bad_inline_map_fails_when_app_is_built():
    with pytest.raises(ConfigurationError):
        create_app(Settings(webhook_secret=SECRET, product_map_json="{not json"))

"""Handle one Shopify webhook delivery end to end."""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..clients.learnworlds import LearnWorldsClient
from ..clients.shopify_admin import ShopifyAdminClient
from ..config import Settings
from ..utils.errors import ConfigurationError, MalformedPayloadError
from ..utils.signature import verify_webhook
from .classifier import ACTIONABLE, IGNORED, EventClassifier
from .models import Unmapped, parse_event
from .product_map import ProductMap, select_product_map_source
from .resolver import LineItemResolver, ResolutionCache
from .revocation import RevocationExecutor

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: Dict[str, Any]


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_payload(raw_body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Invalid JSON body: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Webhook body must be a JSON object")
    return payload


class WebhookProcessor:
    def __init__(self, webhook_secret: Optional[str], classifier: EventClassifier,
                 resolver: LineItemResolver, executor: RevocationExecutor):
        self.webhook_secret = webhook_secret
        self.classifier = classifier
        self.resolver = resolver
        self.executor = executor

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResponse:
        """Verify, classify and act on one delivery.

        ``raw_body`` must be the bytes exactly as received; any re-encoding
        breaks the HMAC check.
        """
        if not verify_webhook(raw_body, _header(headers, HMAC_HEADER), self.webhook_secret):
            logging.warning("Rejected webhook: HMAC verification failed")
            return WebhookResponse(401, {"ok": False, "error": "HMAC verification failed"})

        topic = _header(headers, TOPIC_HEADER) or ""
        logging.info(
            f"✔️ HMAC verified: topic={topic} shop={_header(headers, SHOP_DOMAIN_HEADER)} "
            f"webhook_id={_header(headers, WEBHOOK_ID_HEADER)}"
        )

        try:
            return self._process(topic, raw_body)
        except MalformedPayloadError as e:
            logging.error(f"Malformed {topic} payload: {e}")
            return WebhookResponse(500, {"ok": False, "error": str(e)})
        except ConfigurationError as e:
            logging.error(f"Configuration error while handling {topic}: {e}")
            return WebhookResponse(500, {"ok": False, "error": str(e)})
        except Exception as e:
            logging.exception(f"Webhook error while handling {topic}")
            return WebhookResponse(500, {"ok": False, "error": str(e)})

    def _process(self, topic: str, raw_body: bytes) -> WebhookResponse:
        event = parse_event(topic, parse_payload(raw_body))
        classification = self.classifier.classify(event)

        if classification.status == IGNORED:
            logging.info(f"Ignoring topic {topic}")
            return WebhookResponse(200, {"ok": True, "ignored": topic})
        if classification.status != ACTIONABLE:
            logging.warning(f"No customer email found for {topic}; nothing to unenroll")
            return WebhookResponse(200, {"ok": True, "skipped": "no_email", "topic": topic})

        email = classification.email
        if classification.line_items:
            self.executor.ensure_ready()

        cache = ResolutionCache()
        actions = []
        for item in classification.line_items:
            mapping = self.resolver.resolve(item, cache)
            if mapping is None:
                actions.append(Unmapped(item))
                continue
            actions.append(self.executor.revoke(email, item, mapping))

        summary = {}
        for action in actions:
            summary[action.status] = summary.get(action.status, 0) + 1
        logging.info(f"Processed {topic} for {email}: {summary or 'no line items'}")

        return WebhookResponse(200, {
            "ok": True,
            "topic": topic,
            "email": email,
            "actions": [action.to_dict() for action in actions],
        })


def build_processor(settings: Settings, product_map: Optional[ProductMap] = None,
                    shopify: Optional[ShopifyAdminClient] = None,
                    learnworlds: Optional[LearnWorldsClient] = None) -> WebhookProcessor:
    """Wire the pipeline from one ``Settings`` snapshot."""
    if product_map is None:
        product_map = select_product_map_source(settings).load()
    shopify = shopify or ShopifyAdminClient.from_settings(settings)
    learnworlds = learnworlds or LearnWorldsClient.from_settings(settings)
    return WebhookProcessor(
        webhook_secret=settings.webhook_secret,
        classifier=EventClassifier(shopify),
        resolver=LineItemResolver(product_map, shopify),
        executor=RevocationExecutor(learnworlds),
    )

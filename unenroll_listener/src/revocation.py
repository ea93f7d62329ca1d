"""Issue one LearnWorlds unenroll per resolved line item."""
import logging

import requests

from ..clients.learnworlds import LearnWorldsClient
from ..utils.errors import EnrollmentError
from .models import ActionResult, Failed, LineItem, ProductMapEntry, Unenrolled


class RevocationExecutor:
    def __init__(self, learnworlds: LearnWorldsClient):
        self.learnworlds = learnworlds

    def ensure_ready(self) -> None:
        """Raise ``ConfigurationError`` before any item is touched."""
        self.learnworlds.ensure_configured()

    def revoke(self, email: str, item: LineItem, mapping: ProductMapEntry) -> ActionResult:
        try:
            response = self.learnworlds.unenroll(email, mapping.product_id, mapping.product_type)
        except EnrollmentError as e:
            logging.error(f"Unenroll failed for {email} / {mapping.product_id}: {e}")
            return Failed(item, mapping, str(e))
        except requests.exceptions.RequestException as e:
            logging.error(f"LearnWorlds request failed for {email} / {mapping.product_id}: {e}")
            return Failed(item, mapping, f"LearnWorlds request failed: {e}")

        logging.info(f"✅ Unenrolled {email} from {mapping.product_type} {mapping.product_id}")
        return Unenrolled(item, mapping, response)

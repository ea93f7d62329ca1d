"""LearnWorlds Admin API v2 client for enrollment management."""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import certifi
import requests

from ..config import Settings
from ..utils.errors import ConfigurationError, EnrollmentError


class LearnWorldsClient:
    def __init__(self, api_base: Optional[str], client_id: Optional[str], token: Optional[str],
                 timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/") if api_base else None
        self.client_id = client_id
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LearnWorldsClient":
        return cls(
            api_base=settings.lw_api_base,
            client_id=settings.lw_client,
            token=settings.lw_token,
            timeout=settings.http_timeout,
        )

    def ensure_configured(self) -> None:
        missing = [
            name for name, value in (
                ("LW_API_BASE", self.api_base),
                ("LW_CLIENT", self.client_id),
                ("LW_TOKEN", self.token),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing LearnWorlds credentials: {', '.join(missing)}")

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.token}",
            "Lw-Client": self.client_id,
            "Content-Type": "application/json",
        }

    def _user_path(self, email: str, suffix: str = "") -> str:
        return f"{self.api_base}/users/{quote(email, safe='')}{suffix}"

    def _request(self, method: str, url: str, **kwargs) -> Any:
        self.ensure_configured()
        response = self.session.request(
            method,
            url,
            headers=self._headers(),
            timeout=self.timeout,
            verify=certifi.where(),
            **kwargs,
        )
        if not response.ok:
            raise EnrollmentError(response.status_code, response.text)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def unenroll(self, email: str, product_id: str, product_type: str) -> Any:
        """Remove ``email``'s access to one product. Raises ``EnrollmentError`` on a non-2xx answer."""
        logging.info(f"Unenrolling {email} from {product_type} {product_id}")
        return self._request(
            "DELETE",
            self._user_path(email, "/enrollment"),
            json={"productId": product_id, "productType": product_type},
        )

    def enroll(self, email: str, product_id: str, product_type: str,
               price: float = 0, send_email: bool = True,
               justification: str = "Added by admin") -> Any:
        logging.info(f"Enrolling {email} into {product_type} {product_id}")
        return self._request(
            "POST",
            self._user_path(email, "/enrollment"),
            json={
                "productId": product_id,
                "productType": product_type,
                "justification": justification,
                "price": price,
                "send_enrollment_email": send_email,
            },
        )

    def get_user(self, email: str) -> Any:
        return self._request("GET", self._user_path(email), params={"include_suspended": "true"})

    def get_user_products(self, email: str) -> Any:
        return self._request("GET", self._user_path(email, "/products"))

    def get_user_courses(self, email: str) -> Any:
        return self._request("GET", self._user_path(email, "/courses"))

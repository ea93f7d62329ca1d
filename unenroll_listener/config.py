"""
Environment loading for the unenroll listener.

Settings are read once at process start and handed to every component as a
frozen ``Settings`` value; nothing else in the package touches ``os.environ``.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_FILENAMES = ('.env.production', '.env')
SENSITIVE_MARKERS = ('token', 'key', 'secret', 'password')
DEFAULT_PRODUCT_MAP_FILE = 'lw-product-map.json'
DEFAULT_SHOPIFY_API_VERSION = '2023-10'
DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass(frozen=True)
class Settings:
    webhook_secret: Optional[str] = None
    lw_api_base: Optional[str] = None
    lw_client: Optional[str] = None
    lw_token: Optional[str] = None
    product_map_json: Optional[str] = None
    product_map_file: str = DEFAULT_PRODUCT_MAP_FILE
    shopify_store_domain: Optional[str] = None
    shopify_admin_access_token: Optional[str] = None
    shopify_api_version: str = DEFAULT_SHOPIFY_API_VERSION
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = 'INFO'

    def missing_enrollment_credentials(self):
        """Names of the LearnWorlds settings that are not set."""
        required = {
            'LW_API_BASE': self.lw_api_base,
            'LW_CLIENT': self.lw_client,
            'LW_TOKEN': self.lw_token,
        }
        return [name for name, value in required.items() if not value]

    @property
    def shopify_admin_configured(self) -> bool:
        return bool(self.shopify_store_domain and self.shopify_admin_access_token)


def find_env_file(filenames=ENV_FILENAMES, search_dirs=None):
    """
    Find the environment file by searching in multiple possible locations
    """
    if search_dirs is None:
        package_dir = os.path.dirname(os.path.abspath(__file__))
        search_dirs = [
            os.getcwd(),
            package_dir,
            os.path.dirname(package_dir),
        ]

    for directory in search_dirs:
        for filename in filenames:
            env_path = os.path.join(directory, filename)
            if os.path.isfile(env_path):
                logging.info(f"Found environment file at: {env_path}")
                return env_path

    logging.debug(f"No environment file ({', '.join(filenames)}) found in {search_dirs}")
    return None


def _clean(value):
    if value is None:
        return None
    value = value.strip()
    return value or None


def _log_setting(name, value):
    if value:
        if any(marker in name.lower() for marker in SENSITIVE_MARKERS):
            logging.info(f"✓ {name} is set (value masked)")
        else:
            logging.info(f"✓ {name} = {value}")
    else:
        logging.info(f"✗ {name} is not set")


def load_settings(env_file=None, environ=None) -> Settings:
    """
    Load settings from an optional .env file plus the process environment.

    Args:
        env_file: Path to an environment file. Falls back to ``ENV_FILE`` and
            then to a search of the usual locations.
        environ: Mapping to read instead of ``os.environ`` (tests).

    Returns:
        Settings: immutable snapshot used for the lifetime of the process.
    """
    if environ is None:
        env_file = env_file or os.getenv('ENV_FILE') or find_env_file()
        if env_file and os.path.exists(env_file):
            logging.info(f"Loading environment from: {env_file}")
            load_dotenv(env_file)
        environ = os.environ

    timeout_raw = _clean(environ.get('HTTP_TIMEOUT'))
    try:
        http_timeout = float(timeout_raw) if timeout_raw else DEFAULT_HTTP_TIMEOUT
    except ValueError:
        logging.warning(f"HTTP_TIMEOUT={timeout_raw!r} is not a number, using {DEFAULT_HTTP_TIMEOUT}")
        http_timeout = DEFAULT_HTTP_TIMEOUT

    lw_api_base = _clean(environ.get('LW_API_BASE'))
    if lw_api_base:
        lw_api_base = lw_api_base.rstrip('/')

    domain = _clean(environ.get('SHOPIFY_STORE_DOMAIN'))
    if domain:
        domain = domain.replace('https://', '').replace('http://', '').rstrip('/')

    settings = Settings(
        webhook_secret=_clean(environ.get('SHOPIFY_WEBHOOK_SECRET')),
        lw_api_base=lw_api_base,
        lw_client=_clean(environ.get('LW_CLIENT')),
        lw_token=_clean(environ.get('LW_TOKEN')),
        product_map_json=_clean(environ.get('LW_PRODUCT_MAP_JSON')),
        product_map_file=_clean(environ.get('LW_PRODUCT_MAP_FILE')) or DEFAULT_PRODUCT_MAP_FILE,
        shopify_store_domain=domain,
        shopify_admin_access_token=_clean(environ.get('SHOPIFY_ADMIN_ACCESS_TOKEN')),
        shopify_api_version=_clean(environ.get('SHOPIFY_API_VERSION')) or DEFAULT_SHOPIFY_API_VERSION,
        http_timeout=http_timeout,
        log_level=(_clean(environ.get('LOG_LEVEL')) or 'INFO').upper(),
    )

    for name, value in (
        ('SHOPIFY_WEBHOOK_SECRET', settings.webhook_secret),
        ('LW_API_BASE', settings.lw_api_base),
        ('LW_CLIENT', settings.lw_client),
        ('LW_TOKEN', settings.lw_token),
        ('SHOPIFY_STORE_DOMAIN', settings.shopify_store_domain),
        ('SHOPIFY_ADMIN_ACCESS_TOKEN', settings.shopify_admin_access_token),
    ):
        _log_setting(name, value)

    if not settings.webhook_secret:
        logging.error("❌ SHOPIFY_WEBHOOK_SECRET is missing; every webhook will be rejected")
    missing = settings.missing_enrollment_credentials()
    if missing:
        logging.warning(f"LearnWorlds credentials missing: {', '.join(missing)}")

    return settings


def resolve_path(path: str) -> Path:
    """Resolve a relative path against the working directory, then the project root."""
    candidate = Path(path)
    if candidate.is_absolute() or candidate.exists():
        return candidate
    project_root = Path(__file__).resolve().parent.parent
    return project_root / candidate

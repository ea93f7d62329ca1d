import dataclasses
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from unenroll_listener.config import DEFAULT_PRODUCT_MAP_FILE, Settings, find_env_file, load_settings


def test_load_settings_from_mapping():
    settings = load_settings(environ={
        "SHOPIFY_WEBHOOK_SECRET": " secret ",
        "LW_API_BASE": "https://school.example.com/admin/api/v2/",
        "LW_CLIENT": "client",
        "LW_TOKEN": "token",
        "SHOPIFY_STORE_DOMAIN": "https://shop.myshopify.com/",
        "SHOPIFY_ADMIN_ACCESS_TOKEN": "shpat",
        "HTTP_TIMEOUT": "5",
        "LOG_LEVEL": "debug",
    })
    assert settings.webhook_secret == "secret"
    assert settings.lw_api_base == "https://school.example.com/admin/api/v2"
    assert settings.shopify_store_domain == "shop.myshopify.com"
    assert settings.shopify_api_version == "2023-10"
    assert settings.product_map_file == DEFAULT_PRODUCT_MAP_FILE
    assert settings.http_timeout == 5.0
    assert settings.log_level == "DEBUG"
    assert settings.shopify_admin_configured is True
    assert settings.missing_enrollment_credentials() == []


def test_defaults_when_empty():
    settings = load_settings(environ={"HTTP_TIMEOUT": "soon", "LW_CLIENT": "  "})
    assert settings.webhook_secret is None
    assert settings.http_timeout == 30.0
    assert settings.shopify_admin_configured is False
    assert settings.missing_enrollment_credentials() == ["LW_API_BASE", "LW_CLIENT", "LW_TOKEN"]


def test_settings_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        Settings().webhook_secret = "x"


def test_env_file_is_loaded(tmp_path, monkeypatch):
    env_file = tmp_path / ".env.production"
    env_file.write_text("SHOPIFY_WEBHOOK_SECRET=from-file\nLW_PRODUCT_MAP_FILE=maps/lw.json\n", encoding="utf-8")
    # setenv first so teardown removes whatever load_dotenv writes
    for name in ("SHOPIFY_WEBHOOK_SECRET", "LW_PRODUCT_MAP_FILE", "ENV_FILE"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)

    assert find_env_file(search_dirs=[str(tmp_path)]) == str(env_file)
    settings = load_settings(env_file=str(env_file))
    assert settings.webhook_secret == "from-file"
    assert settings.product_map_file == "maps/lw.json"


def test_find_env_file_none(tmp_path):
    assert find_env_file(search_dirs=[str(tmp_path)]) is None

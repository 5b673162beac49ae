import json
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

import httpx
import pytest

from newsdesk.config import Settings
from newsdesk.shared.store import LocalDirectoryStorage, PendingStore

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def rss_item(title: str, link: str, pub: Optional[object] = None, description: str = "", extra: str = "") -> str:
    """One <item>; ``pub`` may be a datetime, a raw string, or None for no pubDate."""
    if isinstance(pub, datetime):
        pub_xml = f"<pubDate>{format_datetime(pub)}</pubDate>"
    elif pub is None:
        pub_xml = ""
    else:
        pub_xml = f"<pubDate>{pub}</pubDate>"
    return (
        f"<item><title>{title}</title><link>{link}</link>{pub_xml}"
        f"<description><![CDATA[{description}]]></description>{extra}</item>"
    )


def rss_feed(*items: str) -> bytes:
    body = "".join(items)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">'
        f"<channel><title>Test feed</title><link>https://example.com</link>{body}</channel></rss>"
    ).encode("utf-8")


def dashscope_reply(content: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"output": {"choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": content}}]}},
    )


@pytest.fixture
def config(tmp_path):
    return Settings(
        _env_file=None,
        store_backend="local",
        local_store_path=str(tmp_path / "store"),
        llm_api_key="sk-test-key",
        llm_service_url="https://llm.test",
        known_brands=["Toyota", "Hyundai", "BYD"],
        keyword_allow_list=["car", "ev", "suv"],
        rss_window_days=7,
    )


@pytest.fixture
def store(config):
    return PendingStore(LocalDirectoryStorage(config.local_store_path), config=config)


@pytest.fixture
def model_json():
    def _build(**overrides):
        payload = {
            "title": "丰田发布新款陆地巡洋舰",
            "summary": "丰田在迪拜发布新车。",
            "brand": "Toyota",
            "type": "New Car Launch",
            "date": "2024-05-09",
            "url": "https://example.com/land-cruiser",
            "image_keywords": "toyota, suv, desert",
            "sentiment": "positive",
            "tags": ["SUV", "launch"],
        }
        payload.update(overrides)
        return json.dumps(payload, ensure_ascii=False)
    return _build

"""Configuration settings for the newsdesk ingestion pipeline."""
from pydantic_settings import BaseSettings
from typing import List, Optional
from newsdesk.schemas.models import FeedSource, SourceType


BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_FEED_SOURCES = [
    FeedSource(name="DriveArabia", url="https://www.drivearabia.com/news/feed/", type=SourceType.DIRECT),
    FeedSource(name="Gulf News Auto", url="https://gulfnews.com/rss/business/auto", type=SourceType.DIRECT),
    FeedSource(name="YallaMotor", url="https://uae.yallamotor.com/car-news/rss", type=SourceType.DIRECT),
    FeedSource(name="Khaleej Times", url="https://www.khaleejtimes.com/business/auto.xml", type=SourceType.DIRECT),
    FeedSource(name="The National UAE", url="https://www.thenationalnews.com/arc/outboundfeeds/rss/?outputType=xml", type=SourceType.AGGREGATOR),
]

DEFAULT_KEYWORDS = [
    "car", "cars", "auto", "automotive", "automaker", "ev", "evs", "suv", "sedan",
    "pickup", "vehicle", "vehicles", "motor", "motors", "electric", "hybrid",
    "toyota", "hyundai", "kia", "nissan", "lexus", "ford", "jetour", "mg",
    "geely", "gwm", "byd", "chery", "gac",
]

DEFAULT_BRANDS = [
    "Toyota", "Hyundai", "Kia", "Nissan", "Lexus", "Ford", "Jetour", "MG",
    "Geely", "GWM", "BYD", "ICAUR", "GAC", "Policy",
]


class Settings(BaseSettings):
    """Application settings."""

    # Storage
    store_backend: str = "supabase"  # supabase, local
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    pending_bucket: str = "newsdesk"
    pending_namespace: str = "pending"
    pending_list_limit: int = 50
    local_store_path: str = ".newsdesk-store"

    # LLM Service (DashScope compatible)
    llm_service_url: str = "https://dashscope.aliyuncs.com"
    llm_api_key: Optional[str] = None
    llm_model: str = "qwen-plus"
    llm_service_timeout: int = 60
    llm_temperature: float = 0.1
    llm_top_p: float = 0.8
    llm_output_language: str = "Chinese"
    known_brands: List[str] = DEFAULT_BRANDS
    unknown_brand_policy: str = "preserve"  # preserve, other

    # Worker Configuration
    log_level: str = "info"

    # RSS Ingestion Settings
    feed_sources: List[FeedSource] = DEFAULT_FEED_SOURCES
    keyword_allow_list: List[str] = DEFAULT_KEYWORDS
    rss_request_timeout: int = 8
    rss_max_items_per_source: int = 20
    rss_max_items_per_batch: int = 200
    rss_window_days: int = 7
    unparsable_date_policy: str = "drop"  # drop, now
    snippet_max_chars: int = 200
    user_agent: str = BROWSER_USER_AGENT
    accept_header: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8"
    accept_language: str = "en-US,en;q=0.9"

    # HTML Extraction Settings
    html_request_timeout: int = 15
    scrape_min_paragraph_chars: int = 20
    scrape_min_body_chars: int = 50
    scrape_max_text_chars: int = 3000
    scrape_max_summary_chars: int = 200
    scrape_summary_fallback_chars: int = 150

    class Config:
        env_file = ".env"
        case_sensitive = False

    def request_headers(self) -> dict:
        """Browser-like header set shared by feed and page fetches."""
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept_header,
            "Accept-Language": self.accept_language,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }


settings = Settings()

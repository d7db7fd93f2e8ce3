"""Settings management - environment loading and validation"""
from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Harvester settings"""

    # Site
    site_origin: str = "https://www.zillow.com"
    query_id_page_path: str = "/homes/"  # page whose traffic carries the detail query id

    # Crawler
    crawler_timeout: int = 30000  # page default timeout (ms)
    crawler_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    crawler_max_retries: int = 3
    crawler_max_concurrency: int = 4
    crawler_headless: bool = True
    crawler_proxy_urls: List[str] = []

    # Hard cap for the initial work item (query id capture + start requests);
    # later items use the run input's handle_page_timeout_secs
    crawler_initial_page_timeout_s: float = 3600.0

    # Discovery / extraction
    search_response_timeout_s: float = 45.0
    query_id_timeout_s: float = 60.0
    detail_delay_s: float = 0.1
    progress_interval_s: float = 10.0

    # Sessions
    session_pool_size: int = 10
    session_max_error_score: int = 3
    session_max_usage: int = 50

    # Queue
    queue_backend: str = "memory"  # memory | redis
    redis_url: str = ""
    redis_queue_prefix: str = "harvester:queue"

    # Output
    dataset_path: str = "storage/dataset.jsonl"

    # Logging
    log_level: str = "INFO"

    @field_validator("crawler_timeout")
    @classmethod
    def validate_crawler_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("crawler_timeout must be positive")
        return v

    @field_validator(
        "crawler_initial_page_timeout_s",
        "search_response_timeout_s",
        "query_id_timeout_s",
    )
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("detail_delay_s", "progress_interval_s")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("crawler_max_concurrency", "session_pool_size")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("concurrency and pool size must be positive")
        return v

    @field_validator("queue_backend")
    @classmethod
    def validate_queue_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in {"memory", "redis"}:
            raise ValueError("queue_backend must be 'memory' or 'redis'")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()

"""Configuration for the page compressor backend and client runtime."""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Configuration from environment variables."""

    @staticmethod
    def host() -> str:
        """Interface to bind."""
        return os.getenv("HOST", "0.0.0.0")

    @staticmethod
    def port() -> int:
        """Port to listen on."""
        return int(os.getenv("PORT", "3000"))

    @staticmethod
    def log_level() -> str:
        """Log level."""
        return os.getenv("LOG_LEVEL", "info")

    @staticmethod
    def cors_origins() -> List[str]:
        """Origins allowed to call the API from a browser."""
        return _split_csv(os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"))

    @staticmethod
    def cache_ttl_seconds() -> int:
        """Optimized page cache TTL in seconds."""
        return int(os.getenv("CACHE_TTL_SECONDS", "600"))

    @staticmethod
    def metrics_ttl_seconds() -> int:
        """Stored metrics TTL in seconds."""
        return int(os.getenv("METRICS_TTL_SECONDS", "3600"))

    @staticmethod
    def fetch_timeout_seconds() -> float:
        """Hard timeout for fetching a target page."""
        return float(os.getenv("FETCH_TIMEOUT_SECONDS", "30"))

    @staticmethod
    def fetch_max_redirects() -> int:
        return int(os.getenv("FETCH_MAX_REDIRECTS", "5"))

    @staticmethod
    def snapshot_target_bytes() -> int:
        """Byte budget for cached text snapshots (50 KiB)."""
        return int(os.getenv("SNAPSHOT_TARGET_BYTES", str(50 * 1024)))

    @staticmethod
    def pagespeed_api_key() -> str:
        """Google PageSpeed Insights API key (optional, rate limited without)."""
        return os.getenv("PAGESPEED_API_KEY", "")

    @staticmethod
    def exempt_hosts() -> List[str]:
        """Hosts that are never blocked so the product's own UI keeps working."""
        extra = _split_csv(os.getenv("EXEMPT_HOSTS", ""))
        return ["localhost", "127.0.0.1"] + extra

    @staticmethod
    def settle_delay_seconds() -> float:
        """Delay after the load event before the client measures the optimized page."""
        return float(os.getenv("SETTLE_DELAY_SECONDS", "1.0"))

    @staticmethod
    def message_timeout_seconds() -> float:
        """How long a client waits for the background store to answer."""
        return float(os.getenv("MESSAGE_TIMEOUT_SECONDS", "5"))

"""Crawl pipeline: rate limiting, proxy rotation, pagination and extraction."""

from __future__ import annotations

from .crawler import CrawlError, Crawler, ProxiesExhaustedError, RetryableNavigationError
from .models import CrawlRequest, CustomRule, ExtractionSchema, ScrapedData
from .proxy import ProxyConfig, ProxyParseError, ProxyPool
from .rate_limiter import RateLimiter

__all__ = [
    "CrawlError",
    "CrawlRequest",
    "Crawler",
    "CustomRule",
    "ExtractionSchema",
    "ProxiesExhaustedError",
    "ProxyConfig",
    "ProxyParseError",
    "ProxyPool",
    "RateLimiter",
    "RetryableNavigationError",
    "ScrapedData",
]

"""
Shared FastAPI dependencies
"""
from cbgwatch.scrapers.base import BaseMarketClient
from cbgwatch.services.scheduler import PriceMonitor, get_monitor


def get_price_monitor() -> PriceMonitor:
    return get_monitor()


def get_market_client() -> BaseMarketClient:
    """The monitor's client, so manual lookups share its rate limiter."""
    return get_monitor().scanner.price_checker.client

"""Marketplace clients"""
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError, RateLimiter
from cbgwatch.scrapers.cbg import CBGClient

__all__ = [
    'BaseMarketClient',
    'MarketplaceError',
    'RateLimiter',
    'CBGClient',
]

from cbgwatch.models.item import Item
from cbgwatch.models.watchlist import WatchlistGroup, WatchlistEntry
from cbgwatch.models.price_snapshot import PriceSnapshot
from cbgwatch.models.alert import Alert
from cbgwatch.models.setting import Setting

__all__ = [
    "Item",
    "WatchlistGroup",
    "WatchlistEntry",
    "PriceSnapshot",
    "Alert",
    "Setting",
]

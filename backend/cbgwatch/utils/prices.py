"""
Price helpers. Prices are stored and compared as integers in minor units (fen).
"""
from typing import Optional


def format_price(minor_units: Optional[int], symbol: str = "¥") -> str:
    """Format minor units as a currency string, e.g. 338000 -> '¥3380.00'."""
    if minor_units is None:
        return "-"
    sign = "-" if minor_units < 0 else ""
    whole, cents = divmod(abs(int(minor_units)), 100)
    return f"{sign}{symbol}{whole}.{cents:02d}"

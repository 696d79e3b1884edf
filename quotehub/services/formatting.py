from decimal import Decimal
from typing import Dict, Optional

from ..config import settings
from .pricing import Totals


def format_money(value: Decimal, symbol: Optional[str] = None) -> str:
    symbol = settings.currency_symbol if symbol is None else symbol
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_totals(totals: Totals, symbol: Optional[str] = None) -> Dict[str, str]:
    """Display strings for a Totals snapshot. Presentation only; never fed back into pricing."""
    out = {}
    for key, value in totals.as_dict().items():
        if key == "markup_percentage":
            out[key] = f"{value:.2f}%"
        else:
            out[key] = format_money(value, symbol)
    out["currency"] = settings.currency_code
    return out

"""Display strings for the presentation layer.

Domain records keep plain floats; widgets call these helpers at render time.
"""

import math

CURRENCY_SYMBOLS: dict[str, str] = {
    "usd": "$",
    "eur": "€",
    "gbp": "£",
    "jpy": "¥",
}

# Prices below this get extra significant digits instead of two decimals.
SUB_UNIT_THRESHOLD = 1.0
SUB_UNIT_SIGNIFICANT_DIGITS = 4

COMPACT_SUFFIXES = ((1e12, "T"), (1e9, "B"), (1e6, "M"))


def _with_symbol(value: float, body: str, currency: str) -> str:
    sign = "-" if value < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(currency.lower())
    if symbol is None:
        return f"{sign}{body} {currency.upper()}"
    return f"{sign}{symbol}{body}"


def format_currency(value: float, currency: str = "usd") -> str:
    """Formats ``value`` as a grouped currency amount, e.g. ``$64,210.55``.

    Sub-unit prices keep four significant digits (``$0.0001234``) so that
    small-cap tokens do not collapse to ``$0.00``.
    """
    magnitude = abs(value)
    if 0 < magnitude < SUB_UNIT_THRESHOLD:
        leading_zeros = -math.floor(math.log10(magnitude)) - 1
        digits = max(2, SUB_UNIT_SIGNIFICANT_DIGITS + leading_zeros)
        body = f"{magnitude:.{digits}f}"
    else:
        body = f"{magnitude:,.2f}"
    return _with_symbol(value, body, currency)


def format_percent(value: float) -> str:
    """Formats a percentage-point value with two fraction digits, e.g. ``-1.25%``."""
    return f"{value:.2f}%"


def format_supply(value: float) -> str:
    """Formats a circulating supply as a grouped integer, e.g. ``19,687,500``."""
    return f"{round(value):,d}"


def format_compact(value: float, currency: str = "usd") -> str:
    """Formats large amounts such as market cap as ``$1.27T`` or ``$845.10B``."""
    for threshold, suffix in COMPACT_SUFFIXES:
        if abs(value) >= threshold:
            body = f"{abs(value) / threshold:,.2f}{suffix}"
            return _with_symbol(value, body, currency)
    return format_currency(value, currency)

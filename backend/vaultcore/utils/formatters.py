"""
CryptoVault Core: Shared Formatters

Human-readable formatting for prices, percentages and account currency.
Used in setup signal strings and log fields.
"""

from __future__ import annotations

import math


def format_currency(value: float | int, decimals: int = 2) -> str:
    """Format a numeric value as USD currency.

    >>> format_currency(1234.5)
    '$1,234.50'
    >>> format_currency(-789.1)
    '-$789.10'
    """
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_pct(value: float | int, decimals: int = 2, show_sign: bool = True) -> str:
    """Format a value as a percentage with optional sign.

    >>> format_pct(12.345)
    '+12.35%'
    >>> format_pct(-3.1, decimals=1)
    '-3.1%'
    """
    if show_sign and value > 0:
        return f"+{value:.{decimals}f}%"
    return f"{value:.{decimals}f}%"


def format_price(value: float | None) -> str:
    """Format a crypto price with precision scaled to its magnitude.

    >>> format_price(43250.5)
    '43,250.50'
    >>> format_price(0.000123456)
    '0.00012346'
    >>> format_price(None)
    'N/A'
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "N/A"

    abs_val = abs(value)
    if abs_val >= 1000:
        return f"{value:,.2f}"
    if abs_val >= 1:
        return f"{value:.4f}"
    return f"{value:.8f}"

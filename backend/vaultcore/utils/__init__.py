# Shared utilities: formatters, validators
from vaultcore.utils.formatters import format_currency, format_pct, format_price
from vaultcore.utils.validators import candles_from_frame, validate_candles, validate_symbol

__all__ = [
    "candles_from_frame",
    "format_currency",
    "format_pct",
    "format_price",
    "validate_candles",
    "validate_symbol",
]

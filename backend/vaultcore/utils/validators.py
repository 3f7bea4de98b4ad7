"""
CryptoVault Core: Input Validators

Boundary checks for candle series and symbols.
Raise ValueError on invalid input; engines assume validated data.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

import pandas as pd

from vaultcore.models import Candle

# Exchange-style pair symbols: BTCUSDT, ETH-USD, SOL/USDC
_SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,12}([-/][A-Z0-9]{2,8})?$")

OHLCV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]
_EPOCH = pd.Timestamp(0, tz="UTC")


def validate_symbol(raw: str) -> str:
    """Clean and validate a trading pair symbol.

    >>> validate_symbol(' btcusdt ')
    'BTCUSDT'
    >>> validate_symbol('eth/usdc')
    'ETH/USDC'
    """
    symbol = raw.strip().upper()
    if not symbol:
        raise ValueError("Symbol cannot be empty")
    if not _SYMBOL_RE.match(symbol):
        raise ValueError(f"Invalid symbol '{symbol}'")
    return symbol


def validate_candles(raw: Iterable[Candle | dict[str, Any]]) -> list[Candle]:
    """Coerce raw candles into ``Candle`` models and check ordering.

    - Accepts ``Candle`` instances or plain dicts with the OHLCV keys.
    - Raises ValueError if timestamps are not strictly ascending
      (this also catches duplicates).
    - pydantic's ValidationError (a ValueError) surfaces malformed bars.
    """
    candles = [c if isinstance(c, Candle) else Candle.model_validate(c) for c in raw]

    for prev, cur in zip(candles, candles[1:]):
        if cur.timestamp == prev.timestamp:
            raise ValueError(f"Duplicate candle timestamp {cur.timestamp}")
        if cur.timestamp < prev.timestamp:
            raise ValueError(
                f"Candles out of order: {cur.timestamp} follows {prev.timestamp}"
            )
    return candles


def candles_from_frame(df: pd.DataFrame) -> list[Candle]:
    """Validated candles from an OHLCV DataFrame, sorted by timestamp.

    Column names are matched case-insensitively. Numeric timestamps are
    taken as epoch milliseconds; anything else is parsed by pandas as UTC
    and converted to milliseconds whatever resolution pandas picks.
    """
    df = df.rename(columns=lambda c: str(c).strip().lower())
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns {missing}")

    df = df[OHLCV_COLUMNS].copy()
    if not pd.api.types.is_numeric_dtype(df["timestamp"]):
        stamps = pd.to_datetime(df["timestamp"], utc=True)
        df["timestamp"] = (stamps - _EPOCH) // pd.Timedelta(milliseconds=1)

    return validate_candles(df.sort_values("timestamp").to_dict("records"))

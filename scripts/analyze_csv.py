#!/usr/bin/env python3
"""
CryptoVault Core: CSV Analyzer

Runs the full analysis pipeline over OHLCV CSV files and prints the result
as JSON. Columns: timestamp, open, high, low, close, volume. Timestamps may
be epoch milliseconds or any format pandas can parse.

Risk reports are sized against VAULTCORE_DEFAULT_ACCOUNT_SIZE unless
--account is given; --no-risk skips them.

Usage:
    python scripts/analyze_csv.py btc_1h.csv --symbol BTCUSDT --timeframe 1h
    python scripts/analyze_csv.py eth_4h.csv --symbol ETHUSDT --account 25000 --risk 0.5
"""

from __future__ import annotations

import argparse
import json
import sys

import pandas as pd
import structlog

from vaultcore.config import get_settings
from vaultcore.pipeline import MarketPipeline
from vaultcore.utils.validators import candles_from_frame

log = structlog.get_logger("analyze_csv")


def load_candles(path: str):
    """Read a CSV into validated candles, sorted by timestamp."""
    try:
        return candles_from_frame(pd.read_csv(path))
    except ValueError as exc:
        raise ValueError(f"{path}: {exc}") from exc


def analyze(path: str, symbol: str, timeframe: str,
            account: float | None, risk: float | None) -> dict:
    candles = load_candles(path)
    log.info("loaded", path=path, candles=len(candles))
    result = MarketPipeline(symbol, timeframe).run(candles, account_size=account, risk_percent=risk)
    return result.model_dump(mode="json")


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Analyze OHLCV CSV files with CryptoVault Core")
    parser.add_argument("paths", nargs="+", help="CSV files to analyze")
    parser.add_argument("--symbol", required=True, help="Trading pair, e.g. BTCUSDT")
    parser.add_argument("--timeframe", default="1h", help="Candle timeframe label (default: 1h)")
    parser.add_argument("--account", type=float, default=settings.default_account_size,
                        help=f"Account size for risk reports (default: {settings.default_account_size:g})")
    parser.add_argument("--risk", type=float, default=settings.default_risk_percent,
                        help=f"Risk per trade in percent (default: {settings.default_risk_percent:g})")
    parser.add_argument("--no-risk", action="store_true", help="Skip risk reports")
    args = parser.parse_args()

    account = None if args.no_risk else args.account

    failed = 0
    for path in args.paths:
        try:
            output = analyze(path, args.symbol, args.timeframe, account, args.risk)
        except (OSError, ValueError) as exc:
            log.error("analyze_failed", path=path, error=str(exc))
            failed += 1
            continue
        print(json.dumps(output, indent=2))

    log.info("complete", files=len(args.paths), failed=failed)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()

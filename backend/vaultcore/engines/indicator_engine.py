"""
CryptoVault Core: Indicator Engine

Pure domain logic for computing the full indicator set at every candle index.
Each column is computed once over the whole series with pandas, then split
into one IndicatorSnapshot per candle.

Uses the `ta` library for SMA, Bollinger Bands and Ichimoku. EMA, RSI, MACD,
Stochastic, ATR, ADX, OBV and MFI are written out here because their seeds
and simplifications differ from the `ta` versions.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd
import structlog
from ta.trend import IchimokuIndicator, SMAIndicator
from ta.volatility import BollingerBands

from vaultcore.cache import MemoCache, make_cache_key
from vaultcore.config import IndicatorConfig
from vaultcore.models import (
    Candle,
    FibonacciLevels,
    IchimokuCloud,
    IndicatorSnapshot,
    PivotPoints,
)

log = structlog.get_logger(__name__)

EPSILON = 1e-10

FIBONACCI_RATIOS = {
    "level_0": 0.0,
    "level_236": 0.236,
    "level_382": 0.382,
    "level_500": 0.5,
    "level_618": 0.618,
    "level_786": 0.786,
    "level_100": 1.0,
}


class IndicatorEngine:
    """Vectorised indicator calculator with an optional memo cache.

    Usage:
        engine = IndicatorEngine()
        snapshots = engine.compute_all(candles, symbol="BTCUSDT", timeframe="1h")

    Results are memoised only when a symbol is given; the key carries the
    candle count and the first and last timestamps.
    """

    def __init__(self, config: Optional[IndicatorConfig] = None):
        self.config = config or IndicatorConfig()
        self._cache = MemoCache(maxsize=self.config.cache_size, name="indicators")

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def compute_all(
        self,
        candles: Sequence[Candle],
        symbol: str = "",
        timeframe: str = "",
    ) -> list[IndicatorSnapshot]:
        """One snapshot per candle, index-aligned with the input."""
        if not candles:
            return []

        key = make_cache_key("indicators", symbol, timeframe, candles) if symbol else None
        if key is not None:
            hit = self._cache.get(key)
            if hit is not None:
                return list(hit)

        df = self._candles_to_dataframe(candles)
        frame = self.compute_frame(df)
        snapshots = self._frame_to_snapshots(frame)

        if key is not None:
            self._cache.set(key, tuple(snapshots))
        log.debug(
            "indicator_engine.computed",
            symbol=symbol or None,
            timeframe=timeframe or None,
            candles=len(candles),
        )
        return snapshots

    def latest(
        self,
        candles: Sequence[Candle],
        symbol: str = "",
        timeframe: str = "",
    ) -> Optional[IndicatorSnapshot]:
        snapshots = self.compute_all(candles, symbol=symbol, timeframe=timeframe)
        return snapshots[-1] if snapshots else None

    def clear_cache(self) -> int:
        return self._cache.clear()

    @property
    def cache_stats(self) -> dict:
        return self._cache.stats()

    def compute_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """Compute every indicator column for an OHLCV DataFrame.

        NaN marks an index whose lookback window is not yet filled.
        """
        cfg = self.config
        close, high, low, volume = df["close"], df["high"], df["low"], df["volume"]
        out = pd.DataFrame({"timestamp": df["timestamp"], "price": close}, index=df.index)

        # ── Moving Averages ──
        for period in (9, 20, 50):
            out[f"ema{period}"] = self._ema(close, period)
        for period in (20, 50, 200):
            out[f"sma{period}"] = SMAIndicator(close, window=period, fillna=False).sma_indicator()

        # ── Momentum ──
        out["rsi"] = self._rsi(close, cfg.rsi_period)

        macd = self._ema(close, cfg.macd_fast) - self._ema(close, cfg.macd_slow)
        signal = self._ema(macd, cfg.macd_signal)
        out["macd"] = macd
        out["macd_signal"] = signal
        out["macd_histogram"] = macd - signal

        stoch_k = self._stochastic(high, low, close, cfg.stochastic_period)
        out["stoch_k"] = stoch_k
        out["stoch_d"] = stoch_k  # single-sample %D

        # ── Volatility ──
        bb = BollingerBands(close, window=cfg.bollinger_period, window_dev=cfg.bollinger_std, fillna=False)
        upper, middle, lower = bb.bollinger_hband(), bb.bollinger_mavg(), bb.bollinger_lband()
        width = upper - lower
        out["bollinger_upper"] = upper
        out["bollinger_middle"] = middle
        out["bollinger_lower"] = lower
        out["bollinger_band"] = (close - lower) / width.where(width > 0, EPSILON)

        true_range = self._true_range(high, low, close)
        out["atr"] = true_range.rolling(cfg.atr_period, min_periods=cfg.atr_period).mean()
        out["adx"] = self._adx(high, low, true_range, cfg.adx_period)

        # ── Volume ──
        volume_ma = volume.rolling(cfg.volume_period, min_periods=cfg.volume_period).mean()
        out["volume_ma"] = volume_ma
        out["volume_ratio"] = volume / volume_ma.where(volume_ma > 0)
        out["obv"] = self._obv(close, volume)
        out["mfi"] = self._mfi(high, low, close, volume, cfg.mfi_period)

        # ── Ichimoku ──
        ichi = IchimokuIndicator(
            high, low,
            window1=cfg.ichimoku_tenkan,
            window2=cfg.ichimoku_kijun,
            window3=cfg.ichimoku_senkou,
            visual=False,
            fillna=False,
        )
        out["ichimoku_tenkan"] = self._mask_before(ichi.ichimoku_conversion_line(), cfg.ichimoku_tenkan - 1)
        out["ichimoku_kijun"] = self._mask_before(ichi.ichimoku_base_line(), cfg.ichimoku_kijun - 1)
        out["ichimoku_senkou_a"] = self._mask_before(ichi.ichimoku_a(), cfg.ichimoku_kijun - 1)
        out["ichimoku_senkou_b"] = self._mask_before(ichi.ichimoku_b(), cfg.ichimoku_senkou - 1)
        out["ichimoku_chikou"] = close.shift(cfg.ichimoku_kijun - 1)

        return out

    # ──────────────────────────────────────────
    # Series Helpers
    # ──────────────────────────────────────────

    @staticmethod
    def _ema(values: pd.Series, period: int) -> pd.Series:
        """Exponential moving average seeded with the SMA of the first
        `period` values.

        Leading NaNs are skipped, so a series with its own warm-up (the MACD
        line) can be smoothed directly.
        """
        arr = values.to_numpy(dtype=float)
        out = np.full(len(arr), np.nan)
        valid = np.flatnonzero(~np.isnan(arr))
        if len(valid) == 0 or len(arr) - valid[0] < period:
            return pd.Series(out, index=values.index)

        seed_end = valid[0] + period
        ema = float(np.sum(arr[valid[0]:seed_end])) / period
        out[seed_end - 1] = ema

        multiplier = 2 / (period + 1)
        for i in range(seed_end, len(arr)):
            ema = (arr[i] - ema) * multiplier + ema
            out[i] = ema
        return pd.Series(out, index=values.index)

    @staticmethod
    def _rsi(close: pd.Series, period: int = 14) -> pd.Series:
        """Wilder RSI. NaN before index `period`."""
        arr = close.to_numpy(dtype=float)
        out = np.full(len(arr), np.nan)
        if len(arr) < period + 1:
            return pd.Series(out, index=close.index)

        diff = np.diff(arr)
        gains = np.clip(diff, 0, None)
        losses = np.clip(-diff, 0, None)

        avg_gain = float(np.sum(gains[:period])) / period
        avg_loss = float(np.sum(losses[:period])) / period
        out[period] = _rsi_from_averages(avg_gain, avg_loss)

        for i in range(period, len(diff)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            out[i + 1] = _rsi_from_averages(avg_gain, avg_loss)

        return pd.Series(out, index=close.index)

    @staticmethod
    def _stochastic(high: pd.Series, low: pd.Series, close: pd.Series, period: int) -> pd.Series:
        highest = high.rolling(period, min_periods=period).max()
        lowest = low.rolling(period, min_periods=period).min()
        span = highest - lowest
        return 100 * (close - lowest) / span.where(span != 0, 1.0)

    @staticmethod
    def _true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
        """True range; NaN at index 0 where no previous close exists."""
        prev_close = close.shift(1)
        tr = pd.concat(
            [high - low, (high - prev_close).abs(), (low - prev_close).abs()],
            axis=1,
        ).max(axis=1)
        tr.iloc[0] = np.nan
        return tr

    @staticmethod
    def _adx(high: pd.Series, low: pd.Series, true_range: pd.Series, period: int) -> pd.Series:
        """Simplified ADX: a single DX over summed directional movement.

        +DM and -DM are not mutually exclusive here, and there is no Wilder
        smoothing of DX, so values will not match charting platforms.
        """
        plus_dm = high.diff().clip(lower=0).rolling(period, min_periods=period).sum()
        minus_dm = (-low.diff()).clip(lower=0).rolling(period, min_periods=period).sum()
        tr_sum = true_range.rolling(period, min_periods=period).sum()
        tr_sum = tr_sum.where(tr_sum > 0, 1.0)

        plus_di = 100 * plus_dm / tr_sum
        minus_di = 100 * minus_dm / tr_sum
        di_sum = plus_di + minus_di
        return 100 * (plus_di - minus_di).abs() / di_sum.where(di_sum != 0, 1.0)

    @staticmethod
    def _obv(close: pd.Series, volume: pd.Series) -> pd.Series:
        direction = np.sign(close.diff()).fillna(0)
        obv = (direction * volume).cumsum()
        obv.iloc[0] = np.nan
        return obv

    @staticmethod
    def _mfi(high: pd.Series, low: pd.Series, close: pd.Series, volume: pd.Series, period: int) -> pd.Series:
        """Money Flow Index. NaN when no money flowed through the window."""
        typical = (high + low + close) / 3
        flow = typical * volume
        rising = typical.diff() > 0

        positive = flow.where(rising, 0.0)
        negative = flow.where(~rising, 0.0)
        positive.iloc[0] = negative.iloc[0] = np.nan

        pos_sum = positive.rolling(period, min_periods=period).sum()
        neg_sum = negative.rolling(period, min_periods=period).sum()
        mfi = 100 - 100 / (1 + pos_sum / neg_sum.where(neg_sum > 0, EPSILON))
        return mfi.where(pos_sum + neg_sum > 0)

    @staticmethod
    def _mask_before(series: pd.Series, first_valid: int) -> pd.Series:
        masked = series.copy()
        masked.iloc[:first_valid] = np.nan
        return masked

    # ──────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────

    @staticmethod
    def _candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
        """Convert candles to a positionally indexed DataFrame."""
        return pd.DataFrame({
            "timestamp": [c.timestamp for c in candles],
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [float(c.volume) for c in candles],
        })

    @staticmethod
    def _frame_to_snapshots(frame: pd.DataFrame) -> list[IndicatorSnapshot]:
        frame = frame.replace([np.inf, -np.inf], np.nan)
        snapshots = []
        for record in frame.to_dict("records"):
            fields = {
                name: float(value)
                for name, value in record.items()
                if name != "timestamp" and not pd.isna(value)
            }
            snapshots.append(IndicatorSnapshot(timestamp=int(record["timestamp"]), **fields))
        return snapshots


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    rs = avg_gain / max(avg_loss, EPSILON)
    return min(100.0, max(0.0, 100 - 100 / (1 + rs)))


# ──────────────────────────────────────────────
# Closed-Form Levels
# ──────────────────────────────────────────────

def fibonacci_levels(high: float, low: float) -> FibonacciLevels:
    """Retracement levels measured down from `high`.

    >>> fibonacci_levels(200, 100).levels["level_500"]
    150.0
    """
    diff = high - low
    levels = {name: high - diff * ratio for name, ratio in FIBONACCI_RATIOS.items()}
    levels["level_100"] = low
    return FibonacciLevels(high=high, low=low, levels=levels)


def fibonacci_from_candles(candles: Sequence[Candle], lookback: Optional[int] = None) -> Optional[FibonacciLevels]:
    """Fibonacci levels spanning the highest high and lowest low of the range."""
    window = candles[-lookback:] if lookback else candles
    if not window:
        return None
    return fibonacci_levels(max(c.high for c in window), min(c.low for c in window))


def pivot_points(high: float, low: float, close: float) -> PivotPoints:
    pivot = (high + low + close) / 3
    return PivotPoints(
        pivot=pivot,
        r1=2 * pivot - low,
        r2=pivot + (high - low),
        r3=high + 2 * (pivot - low),
        s1=2 * pivot - high,
        s2=pivot - (high - low),
        s3=low - 2 * (high - pivot),
    )


def ichimoku_cloud(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    tenkan: int = 9,
    kijun: int = 26,
    senkou: int = 52,
) -> IchimokuCloud:
    """Ichimoku lines at the last index of the given range.

    A line is None when the range is shorter than its window.
    """
    def midpoint(window: int) -> Optional[float]:
        if len(highs) < window:
            return None
        return (max(highs[-window:]) + min(lows[-window:])) / 2

    tenkan_line = midpoint(tenkan)
    kijun_line = midpoint(kijun)
    senkou_a = (tenkan_line + kijun_line) / 2 if tenkan_line is not None and kijun_line is not None else None
    return IchimokuCloud(
        tenkan=tenkan_line,
        kijun=kijun_line,
        senkou_a=senkou_a,
        senkou_b=midpoint(senkou),
        chikou=closes[-kijun] if len(closes) >= kijun else None,
    )

"""
CryptoVault Core: Pattern Detection Engine

Rule-based detection of chart and candlestick patterns plus clustered
support/resistance levels. Deterministic analysis, recomputed from the full
window on every call.

Chart Patterns:
  Head & Shoulders (& Inverse), Double Top/Bottom,
  Ascending/Descending/Symmetric Triangle, Bull/Bear Flag,
  Rising/Falling Wedge
Candlestick Patterns (last two candles):
  Hammer, Hanging Man, Shooting Star, Inverted Hammer, Doji,
  Bullish/Bearish Engulfing

Every detector reports at most its most recent match: the question answered
is "what is active now", not "what happened historically".
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import structlog

from vaultcore.config import PatternConfig
from vaultcore.models import (
    Candle,
    Direction,
    LevelType,
    Pattern,
    PatternSummary,
    PatternType,
    SupportResistanceLevel,
)

log = structlog.get_logger(__name__)


# ──────────────────────────────────────────────
# Swing Primitive
# ──────────────────────────────────────────────

def find_swings(values: Sequence[float], mode: str = "high", period: int = 5) -> list[tuple[int, float]]:
    """Find swing highs or lows. Returns list of (index, value).

    A swing high is strictly greater than every other point within
    `period` on both sides; a swing low is strictly lower. Indices without
    a full window on both sides are never swings.
    """
    data = np.asarray(values, dtype=float)
    swings = []
    for i in range(period, len(data) - period):
        window = np.delete(data[i - period:i + period + 1], period)
        if mode == "high":
            if np.all(data[i] > window):
                swings.append((i, float(data[i])))
        else:
            if np.all(data[i] < window):
                swings.append((i, float(data[i])))
    return swings


def find_peaks(values: Sequence[float], period: int = 5) -> list[tuple[int, float]]:
    return find_swings(values, mode="high", period=period)


def find_troughs(values: Sequence[float], period: int = 5) -> list[tuple[int, float]]:
    return find_swings(values, mode="low", period=period)


def fit_trendline(values: Sequence[float]) -> tuple[float, float]:
    """Least-squares line through `values` against their index.

    Returns (relative slope, intercept). The slope is divided by the mean of
    the values, so thresholds read as fraction-of-price per candle whatever
    the instrument's price scale.
    """
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    mean = float(np.mean(y))
    relative = float(slope) / mean if mean else 0.0
    return relative, float(intercept)


class PatternEngine:
    """Chart/candlestick pattern and support/resistance detector.

    Usage:
        engine = PatternEngine()
        patterns = engine.detect_all(candles)
        levels = engine.detect_support_resistance(candles)
    """

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def detect_all(self, candles: Sequence[Candle]) -> list[Pattern]:
        """Run every detector. Fewer than `min_candles` candles gives []."""
        if len(candles) < self.config.min_candles:
            return []

        patterns: list[Pattern] = []
        for found in (
            self.detect_head_and_shoulders(candles),
            self.detect_inverse_head_and_shoulders(candles),
            self._scan_double(candles, mode="high"),
            self._scan_double(candles, mode="low"),
        ):
            if found is not None:
                patterns.append(found)

        patterns.extend(self.detect_triangles(candles))
        patterns.extend(self.detect_flags(candles))
        patterns.extend(self.detect_wedges(candles))
        patterns.extend(self.detect_candlestick_patterns(candles[-self.config.candle_tail:]))

        log.debug(
            "pattern_engine.detected",
            candles=len(candles),
            patterns=[p.type.value for p in patterns],
        )
        return patterns

    def detect_support_resistance(self, candles: Sequence[Candle]) -> list[SupportResistanceLevel]:
        """Cluster every high and low; keep clusters touched often enough.

        Levels below the last close are SUPPORT, the rest RESISTANCE.
        Strongest first, at most `sr_max_levels`.
        """
        cfg = self.config
        if len(candles) < cfg.min_candles:
            return []

        points = [c.high for c in candles] + [c.low for c in candles]
        current = candles[-1].close

        levels = [
            SupportResistanceLevel(
                price=price,
                strength=count,
                type=LevelType.SUPPORT if price < current else LevelType.RESISTANCE,
            )
            for price, count in self._cluster_prices(points, cfg.sr_tolerance)
            if count >= cfg.sr_touch_threshold
        ]
        levels.sort(key=lambda lvl: lvl.strength, reverse=True)
        return levels[:cfg.sr_max_levels]

    # ──────────────────────────────────────────
    # Reversal Patterns
    # ──────────────────────────────────────────

    def detect_head_and_shoulders(self, candles: Sequence[Candle]) -> Optional[Pattern]:
        """Three peaks, middle highest, shoulders within tolerance."""
        cfg = self.config
        window = cfg.head_shoulders_window
        match = None

        for i in range(window, len(candles) - 10):
            highs = [c.high for c in candles[i - window:i]]
            peaks = find_peaks(highs, cfg.swing_period)
            if len(peaks) < 3:
                continue

            (ls_i, ls), (_, head), (rs_i, rs) = peaks[-3:]
            if head > ls and head > rs and abs(ls - rs) / ls < cfg.shoulder_tolerance:
                neckline = min(ls, rs)
                match = Pattern(
                    type=PatternType.HEAD_AND_SHOULDERS,
                    direction=Direction.BEARISH,
                    confidence=0.75,
                    neckline=neckline,
                    target=head - 2 * (head - neckline),
                    start_index=i - window + ls_i,
                    end_index=i - window + rs_i,
                    timestamp=candles[i].timestamp,
                )
        return match

    def detect_inverse_head_and_shoulders(self, candles: Sequence[Candle]) -> Optional[Pattern]:
        """Mirror of head & shoulders on the lows."""
        cfg = self.config
        window = cfg.head_shoulders_window
        match = None

        for i in range(window, len(candles) - 10):
            lows = [c.low for c in candles[i - window:i]]
            troughs = find_troughs(lows, cfg.swing_period)
            if len(troughs) < 3:
                continue

            (ls_i, ls), (_, head), (rs_i, rs) = troughs[-3:]
            if head < ls and head < rs and abs(ls - rs) / ls < cfg.shoulder_tolerance:
                neckline = max(ls, rs)
                match = Pattern(
                    type=PatternType.INVERSE_HEAD_AND_SHOULDERS,
                    direction=Direction.BULLISH,
                    confidence=0.75,
                    neckline=neckline,
                    target=head + 2 * (neckline - head),
                    start_index=i - window + ls_i,
                    end_index=i - window + rs_i,
                    timestamp=candles[i].timestamp,
                )
        return match

    def detect_double_top(self, candles: Sequence[Candle]) -> Optional[Pattern]:
        """Double top over the whole given range, treated as one window."""
        if not candles:
            return None
        return self._double_in_window(candles, mode="high", timestamp=candles[-1].timestamp)

    def detect_double_bottom(self, candles: Sequence[Candle]) -> Optional[Pattern]:
        """Double bottom over the whole given range, treated as one window."""
        if not candles:
            return None
        return self._double_in_window(candles, mode="low", timestamp=candles[-1].timestamp)

    def _scan_double(self, candles: Sequence[Candle], mode: str) -> Optional[Pattern]:
        window = self.config.double_window
        match = None
        for i in range(window, len(candles) - 5):
            found = self._double_in_window(candles[i - window:i], mode, candles[i].timestamp)
            if found is not None:
                match = found
        return match

    def _double_in_window(self, window: Sequence[Candle], mode: str, timestamp: int) -> Optional[Pattern]:
        cfg = self.config
        if mode == "high":
            values = [c.high for c in window]
            swings = find_peaks(values, cfg.swing_period)
        else:
            values = [c.low for c in window]
            swings = find_troughs(values, cfg.swing_period)
        if len(swings) < 2:
            return None

        (i1, v1), (i2, v2) = swings[-2:]
        if abs(v1 - v2) / v1 >= cfg.double_tolerance or i2 - i1 < cfg.double_min_separation:
            return None

        if mode == "high":
            return Pattern(
                type=PatternType.DOUBLE_TOP,
                direction=Direction.BEARISH,
                confidence=0.70,
                level=(v1 + v2) / 2,
                target=v1 - (v1 - min(values)) * 2,
                timestamp=timestamp,
            )
        return Pattern(
            type=PatternType.DOUBLE_BOTTOM,
            direction=Direction.BULLISH,
            confidence=0.70,
            level=(v1 + v2) / 2,
            target=v1 + (max(values) - v1) * 2,
            timestamp=timestamp,
        )

    # ──────────────────────────────────────────
    # Continuation Patterns
    # ──────────────────────────────────────────

    def detect_triangles(self, candles: Sequence[Candle]) -> list[Pattern]:
        """Classify the last `trendline_window` candles by trendline slopes."""
        cfg = self.config
        if len(candles) < cfg.trendline_window:
            return []

        subset = candles[-cfg.trendline_window:]
        upper_slope, upper_icpt = fit_trendline([c.high for c in subset])
        lower_slope, lower_icpt = fit_trendline([c.low for c in subset])
        ts = candles[-1].timestamp
        patterns = []

        # Ascending: flat resistance, rising support
        if abs(upper_slope) < cfg.flat_slope and lower_slope > cfg.steep_slope:
            patterns.append(Pattern(
                type=PatternType.ASCENDING_TRIANGLE,
                direction=Direction.BULLISH,
                confidence=0.65,
                resistance=upper_icpt,
                target=upper_icpt * 1.05,
                timestamp=ts,
            ))

        # Descending: falling resistance, flat support
        if upper_slope < -cfg.steep_slope and abs(lower_slope) < cfg.flat_slope:
            patterns.append(Pattern(
                type=PatternType.DESCENDING_TRIANGLE,
                direction=Direction.BEARISH,
                confidence=0.65,
                support=lower_icpt,
                target=lower_icpt * 0.95,
                timestamp=ts,
            ))

        if upper_slope < -cfg.converging_slope and lower_slope > cfg.converging_slope:
            patterns.append(Pattern(
                type=PatternType.SYMMETRIC_TRIANGLE,
                direction=Direction.NEUTRAL,
                confidence=0.60,
                timestamp=ts,
            ))

        return patterns

    def detect_flags(self, candles: Sequence[Candle]) -> list[Pattern]:
        """Strong pole over the prior window, tight consolidation after it."""
        cfg = self.config
        window = cfg.flag_window
        if len(candles) < window * 2:
            return []

        recent = candles[-window:]
        prior = candles[-window * 2:-window]

        recent_range = max(c.high for c in recent) - min(c.low for c in recent)
        prior_range = max(c.high for c in prior) - min(c.low for c in prior)
        prior_move = prior[-1].close - prior[0].close
        consolidating = recent_range < prior_range * cfg.flag_range_ratio

        if not consolidating:
            return []

        if prior_move > prior_range * cfg.flag_move_ratio:
            flag_type, direction = PatternType.BULL_FLAG, Direction.BULLISH
        elif prior_move < -prior_range * cfg.flag_move_ratio:
            flag_type, direction = PatternType.BEAR_FLAG, Direction.BEARISH
        else:
            return []

        return [Pattern(
            type=flag_type,
            direction=direction,
            confidence=0.70,
            pole_height=prior_move,
            target=recent[-1].close + prior_move,
            timestamp=candles[-1].timestamp,
        )]

    def detect_wedges(self, candles: Sequence[Candle]) -> list[Pattern]:
        """Both trendlines sloping the same way at different rates."""
        cfg = self.config
        if len(candles) < cfg.trendline_window:
            return []

        subset = candles[-cfg.trendline_window:]
        upper, _ = fit_trendline([c.high for c in subset])
        lower, _ = fit_trendline([c.low for c in subset])
        ts = candles[-1].timestamp

        if upper > 0 and lower > 0 and lower > upper:
            return [Pattern(
                type=PatternType.RISING_WEDGE,
                direction=Direction.BEARISH,
                confidence=0.65,
                timestamp=ts,
            )]
        if upper < 0 and lower < 0 and upper < lower:
            return [Pattern(
                type=PatternType.FALLING_WEDGE,
                direction=Direction.BULLISH,
                confidence=0.65,
                timestamp=ts,
            )]
        return []

    # ──────────────────────────────────────────
    # Candlestick Patterns
    # ──────────────────────────────────────────

    def detect_candlestick_patterns(self, candles: Sequence[Candle]) -> list[Pattern]:
        """Single- and two-candle formations on the last two candles."""
        if len(candles) < 2:
            return []

        prev, last = candles[-2], candles[-1]
        body = abs(last.close - last.open)
        wick_up = last.high - max(last.open, last.close)
        wick_down = min(last.open, last.close) - last.low
        rng = last.high - last.low
        ts = last.timestamp
        patterns = []

        if wick_down > body * 2 and wick_up < body * 0.3:
            rising = last.close > prev.close
            patterns.append(Pattern(
                type=PatternType.HAMMER if rising else PatternType.HANGING_MAN,
                direction=Direction.BULLISH if rising else Direction.BEARISH,
                confidence=0.60,
                timestamp=ts,
            ))

        if wick_up > body * 2 and wick_down < body * 0.3:
            falling = last.close < prev.close
            patterns.append(Pattern(
                type=PatternType.SHOOTING_STAR if falling else PatternType.INVERTED_HAMMER,
                direction=Direction.BEARISH if falling else Direction.BULLISH,
                confidence=0.60,
                timestamp=ts,
            ))

        if body < rng * 0.1:
            patterns.append(Pattern(
                type=PatternType.DOJI,
                direction=Direction.NEUTRAL,
                confidence=0.50,
                timestamp=ts,
            ))

        prev_body = abs(prev.close - prev.open)
        if body > prev_body * 1.5:
            if last.close > last.open and prev.close < prev.open:
                patterns.append(Pattern(
                    type=PatternType.BULLISH_ENGULFING,
                    direction=Direction.BULLISH,
                    confidence=0.70,
                    timestamp=ts,
                ))
            elif last.close < last.open and prev.close > prev.open:
                patterns.append(Pattern(
                    type=PatternType.BEARISH_ENGULFING,
                    direction=Direction.BEARISH,
                    confidence=0.70,
                    timestamp=ts,
                ))

        return patterns

    # ──────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────

    @staticmethod
    def _cluster_prices(prices: list[float], tolerance: float) -> list[tuple[float, int]]:
        """Sequential clustering on sorted prices against a running centroid.

        Returns (centroid, touch_count) in ascending price order.
        """
        if not prices:
            return []

        ordered = sorted(prices)
        clusters: list[tuple[float, int]] = []
        centroid, count = ordered[0], 1

        for price in ordered[1:]:
            if (price - centroid) / centroid <= tolerance:
                count += 1
                centroid += (price - centroid) / count
            else:
                clusters.append((centroid, count))
                centroid, count = price, 1
        clusters.append((centroid, count))
        return clusters


def pattern_summary(
    patterns: Sequence[Pattern],
    levels: Sequence[SupportResistanceLevel] = (),
) -> PatternSummary:
    return PatternSummary(
        total=len(patterns),
        bullish=sum(1 for p in patterns if p.direction == Direction.BULLISH),
        bearish=sum(1 for p in patterns if p.direction == Direction.BEARISH),
        patterns=list(patterns),
        levels=list(levels),
    )

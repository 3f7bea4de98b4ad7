"""
CryptoVault Core: Pattern Engine Tests

Swing detection, chart patterns on hand-built price paths, candlestick
formations and support/resistance clustering.
"""

import pytest


def _candle(i: int, high: float, low: float, open_: float = None, close: float = None):
    from vaultcore.models import Candle

    mid = (high + low) / 2
    return Candle(
        timestamp=1_700_000_000_000 + i * 60_000,
        open=mid if open_ is None else open_,
        high=high,
        low=low,
        close=mid if close is None else close,
        volume=1_000.0,
    )


def _channel(highs: list[float], lows: list[float]):
    """Helper: candles from parallel high/low paths, open/close at midpoint."""
    return [_candle(i, h, l) for i, (h, l) in enumerate(zip(highs, lows))]


def _linspace(start: float, stop: float, n: int) -> list[float]:
    step = (stop - start) / (n - 1)
    return [start + step * i for i in range(n)]


# ═══════════════════════════════════════════════
#  SWING PRIMITIVE
# ═══════════════════════════════════════════════

class TestSwings:

    def test_single_peak(self):
        from vaultcore.engines.pattern_engine import find_peaks
        assert find_peaks([1, 2, 3, 2, 1], period=2) == [(2, 3.0)]

    def test_single_trough(self):
        from vaultcore.engines.pattern_engine import find_troughs
        assert find_troughs([5, 4, 1, 4, 5], period=2) == [(2, 1.0)]

    def test_plateau_is_not_a_swing(self):
        from vaultcore.engines.pattern_engine import find_peaks
        assert find_peaks([1, 3, 3, 1, 0], period=1) == []

    def test_edges_need_full_window(self):
        from vaultcore.engines.pattern_engine import find_peaks
        assert find_peaks([9, 1, 1, 1, 1, 1, 1], period=2) == []
        assert find_peaks([1, 2, 3], period=2) == []

    def test_trendline_slope_is_relative(self):
        from vaultcore.engines.pattern_engine import fit_trendline
        slope, intercept = fit_trendline([100.0, 101.0, 102.0, 103.0, 104.0])
        assert slope == pytest.approx(1 / 102.0)
        assert intercept == pytest.approx(100.0)

        scaled, _ = fit_trendline([v * 1000 for v in (100.0, 101.0, 102.0, 103.0, 104.0)])
        assert scaled == pytest.approx(slope)


# ═══════════════════════════════════════════════
#  REVERSAL PATTERNS
# ═══════════════════════════════════════════════

class TestReversals:

    def test_double_bottom_on_short_window(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = []
        for i in range(21):
            if i in (5, 15):
                candles.append(_candle(i, high=103, low=100, open_=102, close=102))
            else:
                candles.append(_candle(i, high=108, low=105, open_=107, close=107))

        pattern = PatternEngine().detect_double_bottom(candles)
        assert pattern is not None
        assert pattern.type == PatternType.DOUBLE_BOTTOM
        assert pattern.direction == Direction.BULLISH
        assert pattern.confidence == pytest.approx(0.70)
        assert pattern.level == pytest.approx(100.0)
        assert pattern.target == pytest.approx(110.0)

    def test_double_top(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = []
        for i in range(21):
            if i in (5, 15):
                candles.append(_candle(i, high=110, low=107, open_=108, close=108))
            else:
                candles.append(_candle(i, high=105, low=102, open_=103, close=103))

        pattern = PatternEngine().detect_double_top(candles)
        assert pattern.type == PatternType.DOUBLE_TOP
        assert pattern.direction == Direction.BEARISH
        assert pattern.level == pytest.approx(110.0)
        assert pattern.target == pytest.approx(100.0)

    def test_double_bottom_needs_separation(self):
        from vaultcore.engines.pattern_engine import PatternEngine

        candles = []
        for i in range(21):
            if i in (5, 14):
                candles.append(_candle(i, high=103, low=100))
            else:
                candles.append(_candle(i, high=108, low=105))
        assert PatternEngine().detect_double_bottom(candles) is None

    def test_double_bottom_outside_tolerance(self):
        from vaultcore.engines.pattern_engine import PatternEngine

        candles = []
        for i in range(21):
            if i == 5:
                candles.append(_candle(i, high=103, low=100))
            elif i == 15:
                candles.append(_candle(i, high=104, low=102))
            else:
                candles.append(_candle(i, high=108, low=105))
        assert PatternEngine().detect_double_bottom(candles) is None

    def test_head_and_shoulders(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        peaks = {10: 110.0, 20: 120.0, 30: 110.5}
        candles = [
            _candle(i, high=peaks.get(i, 100.0), low=99.0, open_=99.5, close=99.5)
            for i in range(60)
        ]
        pattern = PatternEngine().detect_head_and_shoulders(candles)
        assert pattern is not None
        assert pattern.type == PatternType.HEAD_AND_SHOULDERS
        assert pattern.direction == Direction.BEARISH
        assert pattern.neckline == pytest.approx(110.0)
        assert pattern.target == pytest.approx(100.0)
        assert pattern.start_index == 10
        assert pattern.end_index == 30

    def test_inverse_head_and_shoulders(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        troughs = {10: 90.0, 20: 80.0, 30: 89.5}
        candles = [
            _candle(i, high=101.0, low=troughs.get(i, 100.0), open_=100.5, close=100.5)
            for i in range(60)
        ]
        pattern = PatternEngine().detect_inverse_head_and_shoulders(candles)
        assert pattern.type == PatternType.INVERSE_HEAD_AND_SHOULDERS
        assert pattern.direction == Direction.BULLISH
        assert pattern.neckline == pytest.approx(90.0)
        assert pattern.target == pytest.approx(100.0)


# ═══════════════════════════════════════════════
#  CONTINUATION PATTERNS
# ═══════════════════════════════════════════════

class TestContinuation:

    def test_ascending_triangle(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        candles = _channel([110.0] * 40, _linspace(90.0, 108.0, 40))
        patterns = PatternEngine().detect_triangles(candles)
        assert [p.type for p in patterns] == [PatternType.ASCENDING_TRIANGLE]
        assert patterns[0].resistance == pytest.approx(110.0)
        assert patterns[0].target == pytest.approx(115.5)

    def test_descending_triangle(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        candles = _channel(_linspace(130.0, 112.0, 40), [110.0] * 40)
        patterns = PatternEngine().detect_triangles(candles)
        assert [p.type for p in patterns] == [PatternType.DESCENDING_TRIANGLE]
        assert patterns[0].target == pytest.approx(104.5)

    def test_symmetric_triangle(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = _channel(_linspace(130.0, 112.0, 40), _linspace(90.0, 108.0, 40))
        patterns = PatternEngine().detect_triangles(candles)
        assert [p.type for p in patterns] == [PatternType.SYMMETRIC_TRIANGLE]
        assert patterns[0].direction == Direction.NEUTRAL

    def test_triangle_is_scale_independent(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        highs = [110_000.0] * 40
        lows = _linspace(90_000.0, 108_000.0, 40)
        patterns = PatternEngine().detect_triangles(_channel(highs, lows))
        assert [p.type for p in patterns] == [PatternType.ASCENDING_TRIANGLE]

    def test_rising_wedge(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = _channel(_linspace(100.0, 110.0, 40), _linspace(90.0, 108.0, 40))
        wedges = PatternEngine().detect_wedges(candles)
        assert [p.type for p in wedges] == [PatternType.RISING_WEDGE]
        assert wedges[0].direction == Direction.BEARISH

    def test_falling_wedge(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = _channel(_linspace(110.0, 92.0, 40), _linspace(100.0, 90.0, 40))
        wedges = PatternEngine().detect_wedges(candles)
        assert [p.type for p in wedges] == [PatternType.FALLING_WEDGE]
        assert wedges[0].direction == Direction.BULLISH

    def test_bull_flag(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        candles = []
        for i in range(20):
            close = 100.0 + 2 * i
            candles.append(_candle(i, high=close + 1, low=close - 1, open_=close, close=close))
        for i in range(20, 40):
            candles.append(_candle(i, high=140.0, low=138.0, open_=139.0, close=139.0))

        flags = PatternEngine().detect_flags(candles)
        assert [p.type for p in flags] == [PatternType.BULL_FLAG]
        assert flags[0].pole_height == pytest.approx(38.0)
        assert flags[0].target == pytest.approx(177.0)

    def test_bear_flag(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        candles = []
        for i in range(20):
            close = 140.0 - 2 * i
            candles.append(_candle(i, high=close + 1, low=close - 1, open_=close, close=close))
        for i in range(20, 40):
            candles.append(_candle(i, high=102.0, low=100.0, open_=101.0, close=101.0))

        flags = PatternEngine().detect_flags(candles)
        assert [p.type for p in flags] == [PatternType.BEAR_FLAG]
        assert flags[0].direction == Direction.BEARISH
        assert flags[0].pole_height == pytest.approx(-38.0)
        assert flags[0].target == pytest.approx(63.0)

    def test_no_flag_without_consolidation(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        candles = _channel(_linspace(101.0, 141.0, 40), _linspace(99.0, 139.0, 40))
        assert PatternEngine().detect_flags(candles) == []


# ═══════════════════════════════════════════════
#  CANDLESTICKS
# ═══════════════════════════════════════════════

class TestCandlesticks:

    def test_hammer(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        prev = _candle(0, high=100.2, low=99.3, open_=99.5, close=100.0)
        last = _candle(1, high=102.1, low=98.0, open_=101.0, close=102.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.HAMMER]

    def test_hanging_man(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        prev = _candle(0, high=103.5, low=102.0, open_=102.5, close=103.0)
        last = _candle(1, high=102.1, low=98.0, open_=101.0, close=102.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.HANGING_MAN]
        assert found[0].direction == Direction.BEARISH

    def test_doji(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        prev = _candle(0, high=100.6, low=99.9, open_=100.0, close=100.5)
        last = _candle(1, high=101.0, low=99.0, open_=100.0, close=100.05)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.DOJI]

    def test_bearish_engulfing(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        prev = _candle(0, high=101.1, low=99.9, open_=100.0, close=101.0)
        last = _candle(1, high=101.6, low=98.9, open_=101.5, close=99.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.BEARISH_ENGULFING]

    def test_shooting_star(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        prev = _candle(0, high=101.2, low=99.8, open_=100.0, close=101.0)
        last = _candle(1, high=103.5, low=99.9, open_=101.0, close=100.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.SHOOTING_STAR]
        assert found[0].direction == Direction.BEARISH

    def test_inverted_hammer(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        prev = _candle(0, high=100.7, low=99.3, open_=100.5, close=99.5)
        last = _candle(1, high=103.5, low=99.9, open_=100.0, close=101.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.INVERTED_HAMMER]
        assert found[0].direction == Direction.BULLISH

    def test_bullish_engulfing(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import Direction, PatternType

        prev = _candle(0, high=101.1, low=99.9, open_=101.0, close=100.0)
        last = _candle(1, high=102.1, low=99.4, open_=99.5, close=102.0)
        found = PatternEngine().detect_candlestick_patterns([prev, last])
        assert [p.type for p in found] == [PatternType.BULLISH_ENGULFING]
        assert found[0].direction == Direction.BULLISH
        assert found[0].confidence == pytest.approx(0.70)

    def test_single_candle(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        assert PatternEngine().detect_candlestick_patterns([_candle(0, 101, 99)]) == []


# ═══════════════════════════════════════════════
#  SUPPORT / RESISTANCE & AGGREGATE
# ═══════════════════════════════════════════════

class TestLevelsAndAggregate:

    def test_short_series_gives_nothing(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        candles = _channel([110.0] * 49, [100.0] * 49)
        engine = PatternEngine()
        assert engine.detect_all(candles) == []
        assert engine.detect_support_resistance(candles) == []

    def test_support_and_resistance(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import LevelType

        candles = _channel([110.0] * 60, [100.0] * 60)
        levels = PatternEngine().detect_support_resistance(candles)
        by_type = {lvl.type: lvl for lvl in levels}
        assert by_type[LevelType.SUPPORT].price == pytest.approx(100.0)
        assert by_type[LevelType.RESISTANCE].price == pytest.approx(110.0)
        assert all(lvl.strength == 60 for lvl in levels)

    def test_cluster_running_centroid(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        clusters = PatternEngine._cluster_prices([100.0, 100.2, 100.4, 120.0], 0.005)
        assert clusters[0][1] == 3
        assert clusters[0][0] == pytest.approx(100.2)
        assert clusters[1] == (120.0, 1)

    def test_detect_all_on_flag(self):
        from vaultcore.engines.pattern_engine import PatternEngine
        from vaultcore.models import PatternType

        candles = [_candle(i, high=101.0, low=99.0, open_=100.0, close=100.0) for i in range(20)]
        for i in range(20, 40):
            close = 100.0 + 2 * (i - 20)
            candles.append(_candle(i, high=close + 1, low=close - 1, open_=close, close=close))
        for i in range(40, 60):
            candles.append(_candle(i, high=140.0, low=138.0, open_=139.0, close=139.0))

        types = {p.type for p in PatternEngine().detect_all(candles)}
        assert PatternType.BULL_FLAG in types

    def test_pattern_summary(self):
        from vaultcore.engines.pattern_engine import pattern_summary
        from vaultcore.models import Direction, Pattern, PatternType

        patterns = [
            Pattern(type=PatternType.BULL_FLAG, direction=Direction.BULLISH, confidence=0.7, timestamp=1),
            Pattern(type=PatternType.DOJI, direction=Direction.NEUTRAL, confidence=0.5, timestamp=1),
            Pattern(type=PatternType.RISING_WEDGE, direction=Direction.BEARISH, confidence=0.65, timestamp=1),
        ]
        summary = pattern_summary(patterns)
        assert (summary.total, summary.bullish, summary.bearish) == (3, 1, 1)
        assert summary.levels == []

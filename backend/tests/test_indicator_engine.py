"""
CryptoVault Core: Indicator Engine Tests

Lookback absence, value bounds, seeding of EMA/MACD, memo cache behaviour
and the closed-form level helpers.
"""

import math

import pytest


def _bars(closes: list[float], volume: float = 1_000.0):
    """Helper: OHLCV candles one hour apart around the given closes."""
    from vaultcore.models import Candle

    return [
        Candle(
            timestamp=1_700_000_000_000 + i * 3_600_000,
            open=c,
            high=c * 1.01,
            low=c * 0.99,
            close=c,
            volume=volume + i,
        )
        for i, c in enumerate(closes)
    ]


def _random_walk(n: int, seed: int = 7) -> list[float]:
    import numpy as np

    rng = np.random.default_rng(seed)
    steps = rng.normal(0, 1.0, n)
    return list(100 + np.cumsum(steps))


# ═══════════════════════════════════════════════
#  LOOKBACK WINDOWS
# ═══════════════════════════════════════════════

class TestLookback:
    """Fields stay None until their window is filled."""

    def test_empty_input(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        assert IndicatorEngine().compute_all([]) == []

    def test_one_snapshot_per_candle(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        candles = _bars(_random_walk(80))
        snaps = IndicatorEngine().compute_all(candles)
        assert len(snaps) == 80
        assert [s.timestamp for s in snaps] == [c.timestamp for c in candles]
        assert snaps[-1].price == candles[-1].close

    def test_ema_and_sma_windows(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        closes = [float(i) for i in range(1, 61)]
        snaps = IndicatorEngine().compute_all(_bars(closes))
        assert snaps[7].ema9 is None
        assert snaps[8].ema9 == pytest.approx(5.0)  # SMA seed of 1..9
        assert snaps[18].sma20 is None
        assert snaps[19].sma20 == pytest.approx(10.5)
        assert snaps[48].ema50 is None
        assert snaps[49].ema50 is not None
        assert all(s.sma200 is None for s in snaps)

    def test_rsi_starts_at_period(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars(_random_walk(40)))
        assert snaps[13].rsi is None
        assert snaps[14].rsi is not None

    def test_macd_signal_starts_at_33(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars(_random_walk(60)))
        assert snaps[24].macd is None
        assert snaps[25].macd is not None
        assert snaps[32].macd_signal is None
        assert snaps[33].macd_signal is not None
        assert snaps[33].macd_histogram == pytest.approx(snaps[33].macd - snaps[33].macd_signal)

    def test_atr_and_obv_windows(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars(_random_walk(30)))
        assert snaps[0].obv is None
        assert snaps[1].obv is not None
        assert snaps[13].atr is None
        assert snaps[14].atr is not None and snaps[14].atr > 0

    def test_short_series_has_only_price(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snap = IndicatorEngine().compute_all(_bars([100.0, 101.0, 102.0]))[-1]
        assert snap.price == 102.0
        assert snap.rsi is None
        assert snap.ema9 is None
        assert snap.bollinger_middle is None


# ═══════════════════════════════════════════════
#  VALUE BOUNDS
# ═══════════════════════════════════════════════

class TestBounds:

    def test_rsi_all_gains_is_near_100(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars([100.0 + i for i in range(30)]))
        assert snaps[-1].rsi == pytest.approx(100.0, abs=1e-6)

    def test_rsi_all_losses_is_zero(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars([130.0 - i for i in range(30)]))
        assert snaps[14].rsi == pytest.approx(0.0, abs=1e-9)
        assert snaps[-1].rsi == pytest.approx(0.0, abs=1e-9)

    def test_rsi_flat_series_is_zero(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars([100.0] * 30))
        assert snaps[-1].rsi == 0.0

    def test_oscillators_within_range(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars(_random_walk(200, seed=3)))
        for s in snaps:
            if s.rsi is not None:
                assert 0 <= s.rsi <= 100
            if s.stoch_k is not None:
                assert 0 <= s.stoch_k <= 100
            if s.mfi is not None:
                assert 0 <= s.mfi <= 100

    def test_bollinger_ordering(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars(_random_walk(60)))
        last = snaps[-1]
        assert last.bollinger_lower <= last.bollinger_middle <= last.bollinger_upper
        assert last.bollinger_middle == pytest.approx(last.sma20)

    def test_no_nan_leaks(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        snaps = IndicatorEngine().compute_all(_bars([100.0] * 60))
        for s in snaps:
            for value in s.model_dump().values():
                if isinstance(value, float):
                    assert math.isfinite(value)

    def test_volume_ratio_of_constant_volume(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        from vaultcore.models import Candle
        candles = [
            Candle(timestamp=i, open=100, high=101, low=99, close=100, volume=500)
            for i in range(25)
        ]
        last = IndicatorEngine().compute_all(candles)[-1]
        assert last.volume_ma == pytest.approx(500)
        assert last.volume_ratio == pytest.approx(1.0)


# ═══════════════════════════════════════════════
#  DETERMINISM & CACHE
# ═══════════════════════════════════════════════

class TestDeterminism:

    def test_recompute_is_identical(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        candles = _bars(_random_walk(120))
        first = IndicatorEngine().compute_all(candles)
        second = IndicatorEngine().compute_all(candles)
        assert first == second

    def test_cache_hit_matches_fresh_compute(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        engine = IndicatorEngine()
        candles = _bars(_random_walk(120))
        fresh = engine.compute_all(candles, symbol="BTCUSDT", timeframe="1h")
        cached = engine.compute_all(candles, symbol="BTCUSDT", timeframe="1h")
        assert fresh == cached
        assert engine.cache_stats["hits"] == 1

    def test_anonymous_series_not_cached(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        engine = IndicatorEngine()
        candles = _bars(_random_walk(50))
        engine.compute_all(candles)
        engine.compute_all(candles)
        assert engine.cache_stats["size"] == 0

    def test_grown_series_misses_cache(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        engine = IndicatorEngine()
        candles = _bars(_random_walk(60))
        engine.compute_all(candles[:59], symbol="ETHUSDT")
        full = engine.compute_all(candles, symbol="ETHUSDT")
        assert len(full) == 60
        assert engine.cache_stats["hits"] == 0

    def test_latest(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        engine = IndicatorEngine()
        candles = _bars(_random_walk(40))
        assert engine.latest(candles).timestamp == candles[-1].timestamp
        assert engine.latest([]) is None

    def test_clear_cache(self):
        from vaultcore.engines.indicator_engine import IndicatorEngine
        engine = IndicatorEngine()
        engine.compute_all(_bars(_random_walk(30)), symbol="SOLUSDT")
        assert engine.clear_cache() == 1
        assert engine.cache_stats["size"] == 0

    def test_compute_frame_columns(self):
        import pandas as pd
        from vaultcore.engines.indicator_engine import IndicatorEngine

        closes = _random_walk(40)
        df = pd.DataFrame({
            "timestamp": range(40),
            "open": closes,
            "high": [c + 1 for c in closes],
            "low": [c - 1 for c in closes],
            "close": closes,
            "volume": [1_000.0] * 40,
        })
        frame = IndicatorEngine().compute_frame(df)
        assert len(frame) == 40
        assert frame["rsi"].iloc[:14].isna().all()
        assert frame["rsi"].iloc[14:].notna().all()


# ═══════════════════════════════════════════════
#  CLOSED-FORM LEVELS
# ═══════════════════════════════════════════════

class TestLevels:

    def test_fibonacci_levels(self):
        from vaultcore.engines.indicator_engine import fibonacci_levels
        fib = fibonacci_levels(200.0, 100.0)
        assert fib.levels["level_0"] == 200.0
        assert fib.levels["level_618"] == pytest.approx(138.2)
        assert fib.levels["level_100"] == 100.0

    def test_fibonacci_from_candles(self):
        from vaultcore.engines.indicator_engine import fibonacci_from_candles
        assert fibonacci_from_candles([]) is None
        fib = fibonacci_from_candles(_bars([100.0, 200.0, 150.0]))
        assert fib.high == pytest.approx(202.0)
        assert fib.low == pytest.approx(99.0)

    def test_pivot_points(self):
        from vaultcore.engines.indicator_engine import pivot_points
        pp = pivot_points(high=110.0, low=90.0, close=100.0)
        assert pp.pivot == pytest.approx(100.0)
        assert pp.r1 == pytest.approx(110.0)
        assert pp.s1 == pytest.approx(90.0)
        assert pp.r2 == pytest.approx(120.0)
        assert pp.s2 == pytest.approx(80.0)

    def test_ichimoku_cloud_short_range(self):
        from vaultcore.engines.indicator_engine import ichimoku_cloud
        highs = [float(i) for i in range(10)]
        cloud = ichimoku_cloud(highs, highs, highs)
        assert cloud.tenkan is not None
        assert cloud.kijun is None
        assert cloud.senkou_a is None
        assert cloud.senkou_b is None

    def test_ichimoku_cloud_full_range(self):
        from vaultcore.engines.indicator_engine import ichimoku_cloud
        values = [float(i) for i in range(60)]
        cloud = ichimoku_cloud(values, values, values)
        assert cloud.tenkan == pytest.approx((59 + 51) / 2)
        assert cloud.kijun == pytest.approx((59 + 34) / 2)
        assert cloud.senkou_a == pytest.approx((cloud.tenkan + cloud.kijun) / 2)
        assert cloud.chikou == 34.0

"""
CryptoVault Core: Trade Setup Detector

Signal fusion: five independent strategies score the latest indicators,
patterns, regime and optional prediction into concrete trade setups.

Strategies:
  1. Trend Following: regime + EMA alignment + prediction + MACD
  2. Mean Reversion: RSI extreme + Bollinger extreme + reversal pattern
  3. Breakout: close beyond the prior 20-candle range + volume + pattern
  4. Pattern Trade: best pattern, confirmed by RSI and prediction
  5. Divergence: price vs. RSI swing divergence

Each strategy produces a signed score; confidence = |score| / max score,
capped at 0.95. A missing indicator contributes nothing.
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Optional, Sequence

import structlog

from vaultcore.config import SetupConfig
from vaultcore.engines.divergence_engine import DivergenceDetector
from vaultcore.errors import SetupInvariantError
from vaultcore.models import (
    Candle,
    Direction,
    EnsembleSignal,
    IndicatorSnapshot,
    Pattern,
    PatternType,
    Prediction,
    Regime,
    RegimeState,
    SetupQuality,
    SetupSummary,
    SetupType,
    SignalAction,
    TradeDirection,
    TradeSetup,
)
from vaultcore.utils.formatters import format_pct, format_price

log = structlog.get_logger(__name__)

TREND_MAX_SCORE = 1 + 1.5 + 2 + 0.8
REVERSION_MAX_SCORE = 3.5
BREAKOUT_MAX_SCORE = 3.5

_TRENDING = (Regime.BULLISH_TRENDING, Regime.BEARISH_TRENDING)
_BREAKOUT_PATTERNS = {
    PatternType.ASCENDING_TRIANGLE,
    PatternType.DESCENDING_TRIANGLE,
    PatternType.SYMMETRIC_TRIANGLE,
    PatternType.BULL_FLAG,
    PatternType.BEAR_FLAG,
}
_PATTERN_SIDE = {
    Direction.BULLISH: TradeDirection.LONG,
    Direction.BEARISH: TradeDirection.SHORT,
}


class SetupDetector:
    """Runs every strategy on the latest data and keeps the result.

    Usage:
        detector = SetupDetector()
        setups = detector.analyze(candles, snapshots, patterns, prediction, regime)

    `active_setups` is the last result; `history` is a bounded log of every
    emitted setup. Neither feeds back into scoring.
    """

    def __init__(
        self,
        config: Optional[SetupConfig] = None,
        divergence: Optional[DivergenceDetector] = None,
    ):
        self.config = config or SetupConfig()
        self.divergence = divergence or DivergenceDetector()
        self.active_setups: list[TradeSetup] = []
        self.history: deque[TradeSetup] = deque(maxlen=self.config.history_size)

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def analyze(
        self,
        candles: Sequence[Candle],
        indicators: Sequence[IndicatorSnapshot],
        patterns: Sequence[Pattern] = (),
        prediction: Optional[Prediction] = None,
        regime: Optional[RegimeState] = None,
    ) -> list[TradeSetup]:
        """Candidate setups at or above min_confidence, best first."""
        if not candles or not indicators:
            self.active_setups = []
            return []

        latest = indicators[-1]
        strategies: list[tuple[SetupType, Callable[[], Optional[TradeSetup]]]] = [
            (SetupType.TREND_FOLLOWING, lambda: self.detect_trend_following(candles, latest, prediction, regime)),
            (SetupType.MEAN_REVERSION, lambda: self.detect_mean_reversion(candles, latest, patterns)),
            (SetupType.BREAKOUT, lambda: self.detect_breakout(candles, latest, patterns)),
            (SetupType.PATTERN_TRADE, lambda: self.detect_pattern_trade(candles, latest, patterns, prediction)),
            (SetupType.DIVERGENCE, lambda: self.detect_divergence_trade(candles, indicators)),
        ]

        setups = []
        for setup_type, run in strategies:
            try:
                setup = run()
            except SetupInvariantError as exc:
                log.warning("setup.rejected", strategy=setup_type.value, reason=str(exc))
                continue
            if setup is not None:
                setups.append(setup)

        valid = [s for s in setups if s.confidence >= self.config.min_confidence]
        valid.sort(key=lambda s: s.confidence, reverse=True)

        self.active_setups = valid
        self.history.extend(valid)
        log.info(
            "setup.analyzed",
            candidates=len(setups),
            emitted=len(valid),
            types=[s.type.value for s in valid],
        )
        return list(valid)

    def summary(self) -> SetupSummary:
        setups = self.active_setups
        if not setups:
            return SetupSummary()
        return SetupSummary(
            total=len(setups),
            long=sum(1 for s in setups if s.direction == TradeDirection.LONG),
            short=sum(1 for s in setups if s.direction == TradeDirection.SHORT),
            avg_confidence=sum(s.confidence for s in setups) / len(setups),
            best=setups[0],
        )

    @staticmethod
    def setup_quality(setup: TradeSetup) -> SetupQuality:
        if setup.confidence >= 0.80:
            return SetupQuality.EXCELLENT
        if setup.confidence >= 0.70:
            return SetupQuality.GOOD
        if setup.confidence < 0.60:
            return SetupQuality.POOR
        return SetupQuality.MEDIUM

    # ──────────────────────────────────────────
    # Strategies
    # ──────────────────────────────────────────

    def detect_trend_following(
        self,
        candles: Sequence[Candle],
        indicator: IndicatorSnapshot,
        prediction: Optional[Prediction],
        regime: Optional[RegimeState],
    ) -> Optional[TradeSetup]:
        signals = []
        score = 0.0

        if regime is not None and regime.regime in _TRENDING:
            signals.append("Trending Market")
            score += 1

        if None not in (indicator.ema9, indicator.ema20, indicator.ema50):
            if indicator.ema9 > indicator.ema20 > indicator.ema50:
                signals.append("Bullish MA Alignment")
                score += 1.5
            elif indicator.ema9 < indicator.ema20 < indicator.ema50:
                signals.append("Bearish MA Alignment")
                score -= 1.5

        if prediction is not None and _agrees(score, prediction.direction):
            signals.append(f"Prediction Confirms {prediction.direction.value}")
            score += _signed(score, prediction.confidence * 2)

        if indicator.macd is not None and indicator.macd_signal is not None:
            if score > 0 and indicator.macd > indicator.macd_signal:
                signals.append("MACD Bullish")
                score += 0.8
            elif score < 0 and indicator.macd < indicator.macd_signal:
                signals.append("MACD Bearish")
                score -= 0.8

        confidence = self._confidence(score, TREND_MAX_SCORE)
        if score == 0 or confidence < self.config.min_confidence:
            return None

        direction = _side(score)
        price = candles[-1].close
        # a zero ATR falls back too
        atr = indicator.atr or price * 0.02
        sign = 1 if direction == TradeDirection.LONG else -1

        return self._make_setup(
            SetupType.TREND_FOLLOWING, direction, confidence,
            entry=price,
            stop_loss=price - sign * atr * 2,
            take_profit=price + sign * atr * 4,
            signals=signals,
            timestamp=candles[-1].timestamp,
        )

    def detect_mean_reversion(
        self,
        candles: Sequence[Candle],
        indicator: IndicatorSnapshot,
        patterns: Sequence[Pattern],
    ) -> Optional[TradeSetup]:
        if indicator.rsi is None:
            return None

        signals = []
        score = 0.0

        if indicator.rsi < 30:
            signals.append(f"RSI Oversold ({indicator.rsi:.1f})")
            score += 1.5
        elif indicator.rsi > 70:
            signals.append(f"RSI Overbought ({indicator.rsi:.1f})")
            score -= 1.5
        else:
            return None

        if indicator.bollinger_band is not None:
            if indicator.bollinger_band < 0.1:
                signals.append("At Lower BB")
                score += 1
            elif indicator.bollinger_band > 0.9:
                signals.append("At Upper BB")
                score -= 1

        wanted = Direction.BULLISH if score > 0 else Direction.BEARISH
        reversal = next((p for p in patterns if p.direction == wanted), None)
        if reversal is not None:
            signals.append(f"Pattern: {reversal.type.value}")
            score += _signed(score, reversal.confidence)

        confidence = self._confidence(score, REVERSION_MAX_SCORE)
        if confidence < self.config.min_confidence:
            return None

        direction = _side(score)
        price = candles[-1].close
        if direction == TradeDirection.LONG:
            stop = price * 0.985
            middle_ok = indicator.bollinger_middle is not None and indicator.bollinger_middle > price
            target = indicator.bollinger_middle if middle_ok else price * 1.02
        else:
            stop = price * 1.015
            middle_ok = indicator.bollinger_middle is not None and indicator.bollinger_middle < price
            target = indicator.bollinger_middle if middle_ok else price * 0.98

        return self._make_setup(
            SetupType.MEAN_REVERSION, direction, confidence,
            entry=price,
            stop_loss=stop,
            take_profit=target,
            signals=signals,
            timestamp=candles[-1].timestamp,
        )

    def detect_breakout(
        self,
        candles: Sequence[Candle],
        indicator: IndicatorSnapshot,
        patterns: Sequence[Pattern],
    ) -> Optional[TradeSetup]:
        lookback = self.config.breakout_lookback
        if len(candles) < lookback + 1:
            return None

        prior = candles[-lookback - 1:-1]
        recent_high = max(c.high for c in prior)
        recent_low = min(c.low for c in prior)
        price = candles[-1].close

        signals = []
        if price > recent_high * 1.001:
            signals.append(f"Breaking Recent High {format_price(recent_high)}")
            score = 1.5
        elif price < recent_low * 0.999:
            signals.append(f"Breaking Recent Low {format_price(recent_low)}")
            score = -1.5
        else:
            return None

        if indicator.volume_ratio is not None and indicator.volume_ratio > 1.5:
            signals.append(f"High Volume Breakout ({indicator.volume_ratio:.1f}x)")
            score += _signed(score, 1)

        confirming = next((p for p in patterns if p.type in _BREAKOUT_PATTERNS), None)
        if confirming is not None:
            signals.append(f"Pattern: {confirming.type.value}")
            score += _signed(score, confirming.confidence)

        confidence = self._confidence(score, BREAKOUT_MAX_SCORE)
        if confidence < self.config.min_confidence:
            return None

        direction = _side(score)
        measured_move = recent_high - recent_low
        if direction == TradeDirection.LONG:
            stop, target = recent_high * 0.995, price + measured_move
        else:
            stop, target = recent_low * 1.005, price - measured_move

        return self._make_setup(
            SetupType.BREAKOUT, direction, confidence,
            entry=price,
            stop_loss=stop,
            take_profit=target,
            signals=signals,
            timestamp=candles[-1].timestamp,
        )

    def detect_pattern_trade(
        self,
        candles: Sequence[Candle],
        indicator: IndicatorSnapshot,
        patterns: Sequence[Pattern],
        prediction: Optional[Prediction],
    ) -> Optional[TradeSetup]:
        if not patterns:
            return None

        best = max(patterns, key=lambda p: p.confidence)
        direction = _PATTERN_SIDE.get(best.direction)
        if best.confidence < self.config.min_confidence or direction is None or best.target is None:
            return None

        signals = [f"Pattern: {best.type.value}"]
        confidence = best.confidence

        if indicator.rsi is not None:
            if direction == TradeDirection.LONG and indicator.rsi < 50:
                signals.append("RSI Below 50")
                confidence += 0.05
            elif direction == TradeDirection.SHORT and indicator.rsi > 50:
                signals.append("RSI Above 50")
                confidence += 0.05

        if prediction is not None and prediction.direction == direction:
            signals.append("Prediction Confirms")
            confidence += 0.10

        confidence = min(self.config.max_confidence, confidence)
        entry = _pattern_level(best, candles[-1].close)
        stop = entry * 0.98 if direction == TradeDirection.LONG else entry * 1.02

        return self._make_setup(
            SetupType.PATTERN_TRADE, direction, confidence,
            entry=entry,
            stop_loss=stop,
            take_profit=best.target,
            signals=signals,
            timestamp=candles[-1].timestamp,
            pattern=best.type,
        )

    def detect_divergence_trade(
        self,
        candles: Sequence[Candle],
        indicators: Sequence[IndicatorSnapshot],
    ) -> Optional[TradeSetup]:
        window = self.config.divergence_window
        if len(indicators) < window or len(candles) < window:
            return None

        rsi_values = [snap.rsi for snap in indicators[-window:]]
        if any(v is None for v in rsi_values):
            return None

        prices = [c.close for c in candles[-window:]]
        divergence = self.divergence.detect(prices, rsi_values, periods=window)
        if divergence is None:
            return None

        price = candles[-1].close
        bullish = divergence.type == Direction.BULLISH
        return self._make_setup(
            SetupType.DIVERGENCE,
            TradeDirection.LONG if bullish else TradeDirection.SHORT,
            divergence.strength,
            entry=price,
            stop_loss=price * 0.98 if bullish else price * 1.02,
            take_profit=price * 1.04 if bullish else price * 0.96,
            signals=[f"{divergence.type.value} Divergence (RSI)"],
            timestamp=candles[-1].timestamp,
        )

    # ──────────────────────────────────────────
    # Ensemble Signal
    # ──────────────────────────────────────────

    def ensemble_signal(
        self,
        indicator: IndicatorSnapshot,
        prediction: Optional[Prediction] = None,
        regime: Optional[RegimeState] = None,
    ) -> EnsembleSignal:
        """Blend the latest indicators and prediction into LONG/SHORT/WAIT."""
        price = indicator.price
        signals = []
        total = 0.0
        max_score = 0.8 + 0.7 + 0.6

        if indicator.rsi is not None:
            if indicator.rsi < 30:
                signals.append("RSI Oversold")
                total += 0.8
            elif indicator.rsi > 70:
                signals.append("RSI Overbought")
                total -= 0.8

        if None not in (indicator.macd, indicator.macd_signal, indicator.macd_histogram):
            if indicator.macd > indicator.macd_signal and indicator.macd_histogram > 0:
                signals.append("MACD Bullish")
                total += 0.7
            elif indicator.macd < indicator.macd_signal and indicator.macd_histogram < 0:
                signals.append("MACD Bearish")
                total -= 0.7

        if indicator.bollinger_lower is not None and price < indicator.bollinger_lower:
            signals.append("BB Oversold")
            total += 0.6
        elif indicator.bollinger_upper is not None and price > indicator.bollinger_upper:
            signals.append("BB Overbought")
            total -= 0.6

        if prediction is not None:
            weight = abs(prediction.change_pct) * prediction.confidence * 0.01
            signals.append(f"Prediction {prediction.direction.value} {format_pct(prediction.change_pct)}")
            total += weight if prediction.direction == TradeDirection.LONG else -weight
            max_score += 0.9

        if indicator.volume_ratio is not None and indicator.volume_ratio > 1.5:
            signals.append("High Volume")

        score = total / max_score
        if score > 0.3:
            action = SignalAction.LONG
        elif score < -0.3:
            action = SignalAction.SHORT
        else:
            action = SignalAction.WAIT

        return EnsembleSignal(
            action=action,
            confidence=min(self.config.max_confidence, abs(score)),
            score=score,
            signals=signals,
            regime=regime.regime if regime is not None else None,
            timestamp=indicator.timestamp,
        )

    # ──────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────

    def _confidence(self, score: float, max_score: float) -> float:
        return min(self.config.max_confidence, abs(score) / max_score)

    @staticmethod
    def _make_setup(
        setup_type: SetupType,
        direction: TradeDirection,
        confidence: float,
        entry: float,
        stop_loss: float,
        take_profit: float,
        signals: list[str],
        timestamp: int,
        pattern: Optional[PatternType] = None,
    ) -> TradeSetup:
        """Build a setup; raises SetupInvariantError on a misordered stop/target."""
        risk = abs(entry - stop_loss)
        return TradeSetup(
            type=setup_type,
            direction=direction,
            confidence=confidence,
            entry=entry,
            stop_loss=stop_loss,
            take_profit=take_profit,
            risk_reward=abs(take_profit - entry) / risk if risk else 0.0,
            signals=signals,
            timestamp=timestamp,
            pattern=pattern,
        )


def _side(score: float) -> TradeDirection:
    return TradeDirection.LONG if score > 0 else TradeDirection.SHORT


def _signed(score: float, magnitude: float) -> float:
    """`magnitude` pointed in the direction the score already leans."""
    return magnitude if score > 0 else -magnitude


def _agrees(score: float, direction: TradeDirection) -> bool:
    return (score > 0 and direction == TradeDirection.LONG) or (
        score < 0 and direction == TradeDirection.SHORT
    )


def _pattern_level(pattern: Pattern, fallback: float) -> float:
    for level in (pattern.level, pattern.neckline, pattern.resistance, pattern.support):
        if level is not None:
            return level
    return fallback

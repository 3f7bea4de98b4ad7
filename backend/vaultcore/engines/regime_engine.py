"""
CryptoVault Core: Regime Classifier

Labels the current market state from return volatility, volume trend and
net price trend over a trailing window. Thresholds come from RegimeConfig.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import structlog

from vaultcore.config import RegimeConfig
from vaultcore.models import Candle, Regime, RegimeState

log = structlog.get_logger(__name__)


class RegimeClassifier:
    """Volatility/trend based regime labelling.

    Usage:
        classifier = RegimeClassifier()
        state = classifier.classify(candles, [c.volume for c in candles])
    """

    def __init__(self, config: Optional[RegimeConfig] = None):
        self.config = config or RegimeConfig()

    def classify(self, candles: Sequence[Candle], volumes: Optional[Sequence[float]] = None) -> RegimeState:
        cfg = self.config
        if volumes is None:
            volumes = [c.volume for c in candles]

        if len(candles) < 2:
            return RegimeState(regime=Regime.RANGING, confidence=0.5)

        closes = np.array([c.close for c in candles[-cfg.lookback:]], dtype=float)
        volatility = self.return_volatility(closes)
        volume_trend = self.volume_trend(volumes[-cfg.lookback:])
        price_trend = float((closes[-1] - closes[0]) / closes[0])

        if volatility > cfg.volatile_threshold and volume_trend > cfg.volatile_volume_trend:
            regime, confidence = Regime.VOLATILE, 0.8
        elif abs(price_trend) > cfg.trend_threshold and volume_trend > cfg.trend_volume_trend:
            regime = Regime.BULLISH_TRENDING if price_trend > 0 else Regime.BEARISH_TRENDING
            confidence = 0.75
        elif volatility < cfg.ranging_volatility:
            regime, confidence = Regime.RANGING, 0.7
        else:
            regime, confidence = Regime.RANGING, 0.5

        log.debug(
            "regime.classified",
            regime=regime.value,
            volatility=round(volatility, 5),
            volume_trend=round(volume_trend, 3),
            price_trend=round(price_trend, 5),
        )
        return RegimeState(
            regime=regime,
            confidence=confidence,
            volatility=volatility,
            price_trend=price_trend,
            volume_trend=volume_trend,
        )

    @staticmethod
    def return_volatility(closes: Sequence[float]) -> float:
        """Population standard deviation of percentage returns."""
        closes = np.asarray(closes, dtype=float)
        if len(closes) < 2:
            return 0.0
        returns = np.diff(closes) / closes[:-1]
        return float(np.std(returns))

    @staticmethod
    def volume_trend(volumes: Sequence[float]) -> float:
        """Mean of the last 5 volumes over the mean of the first 10."""
        if not len(volumes):
            return 0.0
        recent = float(np.mean(volumes[-5:]))
        earlier = float(np.mean(volumes[:10]))
        return recent / (earlier or 1.0)

"""
CryptoVault Core: Divergence Detector

Compares swing structure of price against an indicator series over a
trailing window. Strength is a configured constant, not a measured statistic.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from vaultcore.config import DivergenceConfig
from vaultcore.engines.pattern_engine import find_peaks, find_troughs
from vaultcore.models import Direction, Divergence

log = structlog.get_logger(__name__)


class DivergenceDetector:
    """Price vs. indicator divergence on the trailing `periods` values."""

    def __init__(self, config: Optional[DivergenceConfig] = None):
        self.config = config or DivergenceConfig()

    def detect(
        self,
        price_series: Sequence[float],
        indicator_series: Sequence[float],
        periods: Optional[int] = None,
    ) -> Optional[Divergence]:
        """Return BULLISH or BEARISH divergence, or None.

        Bullish: price prints a lower swing low while the indicator prints
        a higher swing low. Bearish mirrors this on swing highs. Bullish is
        checked first.
        """
        periods = periods or self.config.periods
        if len(price_series) < periods or len(indicator_series) < periods:
            return None

        prices = list(price_series[-periods:])
        indicator = list(indicator_series[-periods:])
        swing = self.config.swing_period

        price_lows = find_troughs(prices, swing)
        ind_lows = find_troughs(indicator, swing)
        if len(price_lows) >= 2 and len(ind_lows) >= 2:
            if price_lows[-1][1] < price_lows[-2][1] and ind_lows[-1][1] > ind_lows[-2][1]:
                log.debug("divergence.detected", type="BULLISH", periods=periods)
                return Divergence(type=Direction.BULLISH, strength=self.config.strength)

        price_highs = find_peaks(prices, swing)
        ind_highs = find_peaks(indicator, swing)
        if len(price_highs) >= 2 and len(ind_highs) >= 2:
            if price_highs[-1][1] > price_highs[-2][1] and ind_highs[-1][1] < ind_highs[-2][1]:
                log.debug("divergence.detected", type="BEARISH", periods=periods)
                return Divergence(type=Direction.BEARISH, strength=self.config.strength)

        return None

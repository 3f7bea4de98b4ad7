"""
CryptoVault Core: Prediction Adapter

Wraps an optional external directional forecaster behind a fixed contract.
The core runs fully without one; a failing or malformed forecaster only
costs the prediction, never the pipeline.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, Union

import numpy as np
import structlog
from pydantic import ValidationError

from vaultcore.config import PredictionConfig
from vaultcore.models import Candle, IndicatorSnapshot, Prediction, TradeDirection

log = structlog.get_logger(__name__)

ForecastResult = Union[Prediction, dict, None]
Forecaster = Callable[[Sequence[Candle], Sequence[IndicatorSnapshot]], ForecastResult]
PriceForecaster = Callable[[Sequence[Candle], Sequence[IndicatorSnapshot]], Optional[float]]


def volatility_confidence(candles: Sequence[Candle], lookback: int = 20) -> float:
    """Confidence that falls as recent return volatility rises.

    0.5 + (0.3 - stddev of returns), clamped to [0.3, 0.95].
    """
    closes = np.array([c.close for c in candles[-lookback:]], dtype=float)
    if len(closes) < 2:
        return 0.5
    volatility = float(np.std(np.diff(closes) / closes[:-1]))
    return max(0.3, min(0.95, 0.5 + (0.3 - volatility)))


class PredictionAdapter:
    """Calls a forecaster on the trailing window and validates its output.

    Usage:
        adapter = PredictionAdapter(my_model.forecast)
        prediction = adapter.predict(candles, snapshots)   # Prediction | None
    """

    def __init__(
        self,
        forecaster: Optional[Forecaster] = None,
        config: Optional[PredictionConfig] = None,
    ):
        self.forecaster = forecaster
        self.config = config or PredictionConfig()

    @classmethod
    def from_price_forecaster(
        cls,
        fn: PriceForecaster,
        config: Optional[PredictionConfig] = None,
    ) -> "PredictionAdapter":
        """Adapt a callable that only returns a predicted price.

        Change, direction and a volatility-based confidence are derived
        from the last close.
        """
        def forecaster(candles, indicators):
            price = fn(candles, indicators)
            if price is None:
                return None
            current = candles[-1].close
            change_pct = (price - current) / current * 100
            return {
                "price": price,
                "change_pct": change_pct,
                "confidence": volatility_confidence(candles),
                "direction": TradeDirection.LONG if change_pct > 0 else TradeDirection.SHORT,
                "timestamp": candles[-1].timestamp,
            }

        return cls(forecaster, config)

    @property
    def available(self) -> bool:
        return self.forecaster is not None

    def predict(
        self,
        candles: Sequence[Candle],
        indicators: Sequence[IndicatorSnapshot],
    ) -> Optional[Prediction]:
        if self.forecaster is None or len(candles) < self.config.min_candles:
            return None

        window = self.config.min_candles + 1
        try:
            raw = self.forecaster(candles[-window:], indicators[-window:])
        except Exception as exc:
            log.warning("prediction.forecaster_failed", error=str(exc), error_type=type(exc).__name__)
            return None

        if raw is None:
            return None
        try:
            return self._normalize(raw)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            log.warning("prediction.invalid_output", error=str(exc))
            return None

    def _normalize(self, raw: Any) -> Prediction:
        data = raw.model_dump() if isinstance(raw, Prediction) else dict(raw)

        if "change_pct" not in data and "change" in data:
            data["change_pct"] = data.pop("change")
        if data.get("direction") is None:
            data["direction"] = TradeDirection.LONG if data["change_pct"] > 0 else TradeDirection.SHORT

        confidence = float(data.get("confidence", 0.0))
        data["confidence"] = max(0.0, min(self.config.max_confidence, confidence))
        return Prediction.model_validate(data)

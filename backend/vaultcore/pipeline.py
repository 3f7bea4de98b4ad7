"""
CryptoVault Core: Market Pipeline

Runs the engines in order for one symbol/timeframe:
candles → indicators → patterns + levels → regime → prediction → setups → risk.

Each pipeline owns its engines (and their caches); pipelines share nothing.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

import structlog
from pydantic import BaseModel

from vaultcore.config import Settings, get_settings
from vaultcore.engines.divergence_engine import DivergenceDetector
from vaultcore.engines.indicator_engine import IndicatorEngine
from vaultcore.engines.pattern_engine import PatternEngine
from vaultcore.engines.prediction_adapter import Forecaster, PredictionAdapter
from vaultcore.engines.regime_engine import RegimeClassifier
from vaultcore.engines.risk_engine import RiskEngine
from vaultcore.engines.setup_engine import SetupDetector
from vaultcore.models import (
    Candle,
    IndicatorSnapshot,
    Pattern,
    Prediction,
    RegimeState,
    RiskReport,
    SupportResistanceLevel,
    TradeSetup,
)
from vaultcore.observability import trace_span
from vaultcore.utils.validators import validate_candles, validate_symbol

log = structlog.get_logger(__name__)


class PipelineResult(BaseModel):
    """Output of one pipeline run. Only the latest indicator snapshot is kept."""
    symbol: str
    timeframe: str
    candles: int = 0
    indicator: Optional[IndicatorSnapshot] = None
    indicator_count: int = 0
    patterns: list[Pattern] = []
    levels: list[SupportResistanceLevel] = []
    regime: Optional[RegimeState] = None
    prediction: Optional[Prediction] = None
    setups: list[TradeSetup] = []
    reports: list[RiskReport] = []


class MarketPipeline:
    """One engine of each kind, wired for a single symbol and timeframe.

    Usage:
        pipeline = MarketPipeline("BTCUSDT", "1h")
        result = pipeline.run(candles, account_size=10_000, risk_percent=1)
    """

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        settings: Optional[Settings] = None,
        forecaster: Optional[Forecaster] = None,
    ):
        self.symbol = validate_symbol(symbol)
        self.timeframe = timeframe
        self.settings = settings or get_settings()

        s = self.settings
        self.indicators = IndicatorEngine(s.indicators)
        self.patterns = PatternEngine(s.patterns)
        self.regime = RegimeClassifier(s.regime)
        self.prediction = PredictionAdapter(forecaster, s.prediction)
        self.setups = SetupDetector(s.setups, DivergenceDetector(s.divergence))
        self.risk = RiskEngine(s.risk)

    def run(
        self,
        candles: Iterable[Candle | dict[str, Any]],
        account_size: Optional[float] = None,
        risk_percent: Optional[float] = None,
    ) -> PipelineResult:
        """Analyze a candle series end to end.

        Risk reports are produced when `account_size` is given; a missing
        `risk_percent` falls back to the configured default.
        """
        span_meta = {"symbol": self.symbol, "timeframe": self.timeframe}

        with trace_span("pipeline.validate", **span_meta) as span:
            bars = validate_candles(candles)
            span["candles"] = len(bars)

        result = PipelineResult(symbol=self.symbol, timeframe=self.timeframe, candles=len(bars))
        if not bars:
            log.info("pipeline.empty", **span_meta)
            return result

        with trace_span("pipeline.indicators", **span_meta):
            snapshots = self.indicators.compute_all(bars, symbol=self.symbol, timeframe=self.timeframe)

        with trace_span("pipeline.patterns", **span_meta) as span:
            patterns = self.patterns.detect_all(bars)
            levels = self.patterns.detect_support_resistance(bars)
            span["patterns"] = len(patterns)
            span["levels"] = len(levels)

        with trace_span("pipeline.regime", **span_meta) as span:
            regime = self.regime.classify(bars)
            span["regime"] = regime.regime.value

        with trace_span("pipeline.prediction", **span_meta):
            prediction = self.prediction.predict(bars, snapshots)

        with trace_span("pipeline.setups", **span_meta) as span:
            setups = self.setups.analyze(bars, snapshots, patterns, prediction, regime)
            span["setups"] = len(setups)

        reports = []
        if account_size is not None:
            risk_percent = risk_percent if risk_percent is not None else self.settings.default_risk_percent
            with trace_span("pipeline.risk", **span_meta):
                reports = [self.risk.generate_report(s, account_size, risk_percent) for s in setups]

        log.info(
            "pipeline.completed",
            **span_meta,
            candles=len(bars),
            patterns=len(patterns),
            regime=regime.regime.value,
            prediction=prediction is not None,
            setups=len(setups),
        )
        return result.model_copy(update={
            "indicator": snapshots[-1],
            "indicator_count": len(snapshots),
            "patterns": patterns,
            "levels": levels,
            "regime": regime,
            "prediction": prediction,
            "setups": setups,
            "reports": reports,
        })

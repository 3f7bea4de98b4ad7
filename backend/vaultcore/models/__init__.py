"""
CryptoVault Core: Pydantic Models

All I/O schemas for the analysis core. Engines return these, the pipeline
bundles them, and callers serialize them with ``model_dump``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from vaultcore.errors import SetupInvariantError


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class Direction(str, Enum):
    """Bias of a pattern or divergence."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class TradeDirection(str, Enum):
    """Side of a trade."""
    LONG = "LONG"
    SHORT = "SHORT"


class PatternType(str, Enum):
    """Chart and candlestick pattern kinds."""
    HEAD_AND_SHOULDERS = "HEAD_AND_SHOULDERS"
    INVERSE_HEAD_AND_SHOULDERS = "INVERSE_HEAD_AND_SHOULDERS"
    DOUBLE_TOP = "DOUBLE_TOP"
    DOUBLE_BOTTOM = "DOUBLE_BOTTOM"
    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    SYMMETRIC_TRIANGLE = "SYMMETRIC_TRIANGLE"
    BULL_FLAG = "BULL_FLAG"
    BEAR_FLAG = "BEAR_FLAG"
    RISING_WEDGE = "RISING_WEDGE"
    FALLING_WEDGE = "FALLING_WEDGE"
    HAMMER = "HAMMER"
    HANGING_MAN = "HANGING_MAN"
    SHOOTING_STAR = "SHOOTING_STAR"
    INVERTED_HAMMER = "INVERTED_HAMMER"
    DOJI = "DOJI"
    BULLISH_ENGULFING = "BULLISH_ENGULFING"
    BEARISH_ENGULFING = "BEARISH_ENGULFING"


class LevelType(str, Enum):
    SUPPORT = "SUPPORT"
    RESISTANCE = "RESISTANCE"


class Regime(str, Enum):
    """Qualitative market state."""
    BULLISH_TRENDING = "BULLISH_TRENDING"
    BEARISH_TRENDING = "BEARISH_TRENDING"
    RANGING = "RANGING"
    VOLATILE = "VOLATILE"


class SetupType(str, Enum):
    """Strategies run by the setup detector."""
    TREND_FOLLOWING = "TREND_FOLLOWING"
    MEAN_REVERSION = "MEAN_REVERSION"
    BREAKOUT = "BREAKOUT"
    PATTERN_TRADE = "PATTERN_TRADE"
    DIVERGENCE = "DIVERGENCE"


class SetupQuality(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    MEDIUM = "MEDIUM"
    POOR = "POOR"


class RecommendationAction(str, Enum):
    """Final call of the risk engine on a setup."""
    TAKE_TRADE = "TAKE_TRADE"
    REDUCE_SIZE = "REDUCE_SIZE"
    SKIP_TRADE = "SKIP_TRADE"
    WAIT = "WAIT"


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

class Candle(BaseModel):
    """Single OHLCV candle. Timestamp is epoch milliseconds."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    open: float = Field(gt=0)
    high: float = Field(gt=0)
    low: float = Field(gt=0)
    close: float = Field(gt=0)
    volume: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.high < self.low:
            raise ValueError(f"high {self.high} is below low {self.low}")
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise ValueError("open and close must lie within [low, high]")
        return self


class IndicatorSnapshot(BaseModel):
    """Indicator values at one candle index.

    A field stays None until its lookback window is filled; None means
    "not enough history", never "neutral".
    """
    model_config = ConfigDict(frozen=True)

    timestamp: int
    price: float

    # Moving averages
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None

    # Momentum
    rsi: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    stoch_k: Optional[float] = None
    stoch_d: Optional[float] = None

    # Volatility
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None
    bollinger_band: Optional[float] = None   # position of close in the band
    atr: Optional[float] = None
    adx: Optional[float] = None

    # Volume
    volume_ma: Optional[float] = None
    volume_ratio: Optional[float] = None
    obv: Optional[float] = None
    mfi: Optional[float] = None

    # Ichimoku
    ichimoku_tenkan: Optional[float] = None
    ichimoku_kijun: Optional[float] = None
    ichimoku_senkou_a: Optional[float] = None
    ichimoku_senkou_b: Optional[float] = None
    ichimoku_chikou: Optional[float] = None


class FibonacciLevels(BaseModel):
    """Retracement levels measured down from the swing high."""
    high: float
    low: float
    levels: dict[str, float]


class PivotPoints(BaseModel):
    """Classic floor-trader pivots."""
    pivot: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float


class IchimokuCloud(BaseModel):
    tenkan: Optional[float] = None
    kijun: Optional[float] = None
    senkou_a: Optional[float] = None
    senkou_b: Optional[float] = None
    chikou: Optional[float] = None


# ──────────────────────────────────────────────
# Pattern Models
# ──────────────────────────────────────────────

class Pattern(BaseModel):
    """A detected pattern, reported once at detection time."""
    model_config = ConfigDict(frozen=True)

    type: PatternType
    direction: Direction
    confidence: float = Field(ge=0, le=1)
    timestamp: int
    neckline: Optional[float] = None
    level: Optional[float] = None
    support: Optional[float] = None
    resistance: Optional[float] = None
    pole_height: Optional[float] = None
    target: Optional[float] = None
    start_index: Optional[int] = None
    end_index: Optional[int] = None


class SupportResistanceLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: float
    strength: int
    type: LevelType


class PatternSummary(BaseModel):
    total: int = 0
    bullish: int = 0
    bearish: int = 0
    patterns: list[Pattern] = []
    levels: list[SupportResistanceLevel] = []


class Divergence(BaseModel):
    """Price vs. indicator swing disagreement."""
    model_config = ConfigDict(frozen=True)

    type: Direction
    strength: float = Field(ge=0, le=1)


# ──────────────────────────────────────────────
# Regime & Prediction Models
# ──────────────────────────────────────────────

class RegimeState(BaseModel):
    model_config = ConfigDict(frozen=True)

    regime: Regime
    confidence: float = Field(ge=0, le=1)
    volatility: float = 0.0
    price_trend: float = 0.0
    volume_trend: float = 0.0


class Prediction(BaseModel):
    """Directional forecast supplied by an external model."""
    model_config = ConfigDict(frozen=True)

    price: float
    change_pct: float
    confidence: float = Field(ge=0, le=1)
    direction: TradeDirection
    timestamp: Optional[int] = None


# ──────────────────────────────────────────────
# Trade Setup Models
# ──────────────────────────────────────────────

class TradeSetup(BaseModel):
    """A concrete trade idea emitted by one strategy.

    Construction fails with SetupInvariantError when the stop or target
    sits on the wrong side of the entry.
    """
    model_config = ConfigDict(frozen=True)

    type: SetupType
    direction: TradeDirection
    confidence: float = Field(ge=0, le=1)
    entry: float = Field(gt=0)
    stop_loss: float
    take_profit: float
    risk_reward: float
    signals: list[str] = []
    timestamp: int
    pattern: Optional[PatternType] = None

    @model_validator(mode="after")
    def check_sides(self):
        if self.direction == TradeDirection.LONG:
            valid = self.stop_loss < self.entry < self.take_profit
        else:
            valid = self.stop_loss > self.entry > self.take_profit
        if not valid:
            raise SetupInvariantError(
                f"{self.type.value} {self.direction.value}: stop {self.stop_loss:.6g}, "
                f"entry {self.entry:.6g}, target {self.take_profit:.6g} out of order",
                direction=self.direction.value,
                entry=self.entry,
                stop_loss=self.stop_loss,
                take_profit=self.take_profit,
            )
        return self

    @property
    def actual_risk_reward(self) -> float:
        return abs(self.take_profit - self.entry) / abs(self.entry - self.stop_loss)


class SetupSummary(BaseModel):
    total: int = 0
    long: int = 0
    short: int = 0
    avg_confidence: float = 0.0
    best: Optional[TradeSetup] = None


class SignalAction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    WAIT = "WAIT"


class EnsembleSignal(BaseModel):
    """Single blended LONG/SHORT/WAIT call from indicators and prediction."""
    action: SignalAction
    confidence: float = Field(ge=0, le=1)
    score: float          # normalized, -1..1
    signals: list[str] = []
    regime: Optional[Regime] = None
    timestamp: Optional[int] = None


# ──────────────────────────────────────────────
# Risk Models
# ──────────────────────────────────────────────

class PositionSizing(BaseModel):
    quantity: float
    notional_value: float
    risk_amount: float
    stop_distance: float
    stop_percent: float
    leverage: int
    max_loss: float


class RiskRewardBreakdown(BaseModel):
    risk: float
    reward: float
    ratio: float
    risk_percent: float
    reward_percent: float


class KellyResult(BaseModel):
    kelly: float          # raw, unclamped fraction
    full_kelly: float     # percent of bankroll, 0-100
    half_kelly: float
    recommended: float


class PartialTakeProfit(BaseModel):
    percent: float        # share of the position closed at this level
    price: float
    ratio: float          # fraction of the entry-to-target distance


class OpenPosition(BaseModel):
    """An open position as seen by the portfolio risk helpers."""
    entry: float = Field(gt=0)
    stop_loss: float
    quantity: float = Field(ge=0)
    symbol: str = ""


class PortfolioHeat(BaseModel):
    total_heat: float
    is_overheated: bool
    max_positions: int
    available_risk: float
    open_positions: int = 0


class PositionRisk(BaseModel):
    total_risk: float
    total_exposure: float
    risk_percent: float
    exposure_percent: float
    number_of_positions: int
    avg_risk_per_trade: float


class TrailingStop(BaseModel):
    trailing_stop: float
    profit: float
    profit_percent: float
    should_move: bool


class ExpectedValue(BaseModel):
    expected_value: float
    expected_percent: float
    is_positive: bool
    win_rate: float
    risk_reward: float


class SharpeRatio(BaseModel):
    sharpe: float
    avg_return: float     # annualized, percent
    volatility: float     # annualized, percent


class Drawdown(BaseModel):
    max_drawdown: float   # percent
    is_acceptable: bool


class TradeRecommendation(BaseModel):
    action: RecommendationAction
    issues: list[str] = []
    score: float = Field(ge=0, le=100)


class RiskReport(BaseModel):
    """Everything needed to act on a setup."""
    setup: TradeSetup
    position: PositionSizing
    risk_reward: RiskRewardBreakdown
    break_even: float
    partials: list[PartialTakeProfit]
    recommendation: TradeRecommendation

"""
CryptoVault Core: Configuration Management

Pydantic Settings: loads from .env and VAULTCORE_* environment variables.
Each engine gets its own nested config block so thresholds can be tuned
per instrument without touching code.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ── Per-engine configuration ──


class IndicatorConfig(BaseModel):
    # EMA 9/20/50 and SMA 20/50/200 are fixed by the snapshot field names.
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_std: float = 2.0
    stochastic_period: int = 14
    atr_period: int = 14
    adx_period: int = 14
    mfi_period: int = 14
    volume_period: int = 20
    ichimoku_tenkan: int = 9
    ichimoku_kijun: int = 26
    ichimoku_senkou: int = 52
    cache_size: int = 32


class PatternConfig(BaseModel):
    min_candles: int = 50
    swing_period: int = 5
    head_shoulders_window: int = 40
    shoulder_tolerance: float = 0.02
    double_window: int = 30
    double_tolerance: float = 0.015
    double_min_separation: int = 10
    trendline_window: int = 40
    flat_slope: float = 0.0001
    steep_slope: float = 0.001
    converging_slope: float = 0.0005
    flag_window: int = 20
    flag_move_ratio: float = 0.5
    flag_range_ratio: float = 0.3
    candle_tail: int = 10
    sr_tolerance: float = 0.005
    sr_touch_threshold: int = 3
    sr_max_levels: int = 10


class DivergenceConfig(BaseModel):
    periods: int = 20
    swing_period: int = 5
    strength: float = 0.8


class RegimeConfig(BaseModel):
    lookback: int = 20
    volatile_threshold: float = 0.03
    volatile_volume_trend: float = 1.2
    trend_threshold: float = 0.02
    trend_volume_trend: float = 1.0
    ranging_volatility: float = 0.01


class SetupConfig(BaseModel):
    min_confidence: float = Field(default=0.60, ge=0, le=1)
    max_confidence: float = 0.95
    breakout_lookback: int = 20
    divergence_window: int = 20
    history_size: int = 100


class RiskConfig(BaseModel):
    fee_percent: float = 0.1
    max_heat: float = 5.0
    max_positions: int = 5
    max_leverage: int = 10
    min_risk_reward: float = 1.5
    max_stop_percent: float = 3.0
    min_confidence: float = 0.65
    default_win_rate: float = 0.55
    trailing_multiplier: float = 2.0
    periods_per_year: int = 252
    acceptable_drawdown: float = 20.0


class PredictionConfig(BaseModel):
    min_candles: int = 60
    max_confidence: float = 0.95


class Settings(BaseSettings):
    """Library configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VAULTCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    default_account_size: float = 10_000.0
    default_risk_percent: float = 1.0

    # ── Engines ──
    indicators: IndicatorConfig = IndicatorConfig()
    patterns: PatternConfig = PatternConfig()
    divergence: DivergenceConfig = DivergenceConfig()
    regime: RegimeConfig = RegimeConfig()
    setups: SetupConfig = SetupConfig()
    risk: RiskConfig = RiskConfig()
    prediction: PredictionConfig = PredictionConfig()


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance, created once and reused everywhere."""
    return Settings()

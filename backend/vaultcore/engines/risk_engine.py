"""
CryptoVault Core: Risk & Sizing Engine

Position sizing, risk/reward, Kelly criterion, portfolio heat and the final
take/skip recommendation for a trade setup. Pure arithmetic, no market data.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
import structlog

from vaultcore.config import RiskConfig
from vaultcore.errors import InvalidRiskInputError
from vaultcore.models import (
    Drawdown,
    ExpectedValue,
    KellyResult,
    OpenPosition,
    PartialTakeProfit,
    PortfolioHeat,
    PositionRisk,
    PositionSizing,
    RecommendationAction,
    RiskReport,
    RiskRewardBreakdown,
    SharpeRatio,
    TradeDirection,
    TradeRecommendation,
    TradeSetup,
    TrailingStop,
)
from vaultcore.observability import traced
from vaultcore.utils.formatters import format_currency

log = structlog.get_logger(__name__)

# (share of position closed, fraction of entry-to-target distance)
PARTIAL_LADDER = ((25.0, 0.5), (25.0, 0.75), (50.0, 1.0))


class RiskEngine:
    """Position sizing and risk management calculations.

    Every method raises InvalidRiskInputError on degenerate input: entry
    equal to stop, a non-positive entry, or a non-positive account size.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()

    # ──────────────────────────────────────────
    # Sizing
    # ──────────────────────────────────────────

    def size_position(
        self,
        entry: float,
        stop: float,
        account_size: float,
        risk_percent: float,
    ) -> PositionSizing:
        """Size a position so that hitting the stop loses `risk_percent` of the account.

        Args:
            entry: Planned entry price.
            stop: Stop-loss price.
            account_size: Account value in quote currency.
            risk_percent: Risk per trade in percent (1.0 = 1%).
        """
        _check_prices(entry, stop)
        _check_account(account_size)

        risk_amount = account_size * (risk_percent / 100)
        stop_distance = abs(entry - stop)
        quantity = risk_amount / stop_distance
        notional = quantity * entry

        return PositionSizing(
            quantity=quantity,
            notional_value=notional,
            risk_amount=risk_amount,
            stop_distance=stop_distance,
            stop_percent=stop_distance / entry * 100,
            leverage=math.ceil(notional / account_size),
            max_loss=risk_amount,
        )

    def risk_reward(self, entry: float, stop: float, target: float) -> RiskRewardBreakdown:
        _check_prices(entry, stop)
        risk = abs(entry - stop)
        reward = abs(target - entry)
        return RiskRewardBreakdown(
            risk=risk,
            reward=reward,
            ratio=reward / risk,
            risk_percent=risk / entry * 100,
            reward_percent=reward / entry * 100,
        )

    @staticmethod
    def kelly_criterion(win_rate: float, avg_win: float, avg_loss: float) -> KellyResult:
        """Kelly % = win_rate / avg_loss - loss_rate / avg_win.

        Full Kelly is clamped to [0, 100]; half Kelly is half of that and is
        the recommended size.
        """
        if avg_win <= 0 or avg_loss <= 0:
            raise InvalidRiskInputError(f"avg_win and avg_loss must be positive, got {avg_win}, {avg_loss}")
        if not 0 <= win_rate <= 1:
            raise InvalidRiskInputError(f"win_rate must lie in [0, 1], got {win_rate}")

        kelly = win_rate / avg_loss - (1 - win_rate) / avg_win
        full = max(0.0, min(1.0, kelly)) * 100
        half = full * 0.5
        return KellyResult(kelly=kelly, full_kelly=full, half_kelly=half, recommended=half)

    # ──────────────────────────────────────────
    # Trade Management
    # ──────────────────────────────────────────

    def break_even(
        self,
        entry: float,
        direction: TradeDirection,
        fee_percent: Optional[float] = None,
    ) -> float:
        """Price that covers the entry and exit fees."""
        _check_entry(entry)
        fee = fee_percent if fee_percent is not None else self.config.fee_percent
        fee_cost = entry * (fee / 100)
        if direction == TradeDirection.LONG:
            return entry + fee_cost * 2
        return entry - fee_cost * 2

    @staticmethod
    def partial_take_profits(
        entry: float,
        target: float,
        direction: TradeDirection,
    ) -> list[PartialTakeProfit]:
        _check_entry(entry)
        distance = abs(target - entry)
        sign = 1 if direction == TradeDirection.LONG else -1
        levels = []
        for percent, ratio in PARTIAL_LADDER:
            price = target if ratio == 1.0 else entry + sign * distance * ratio
            levels.append(PartialTakeProfit(percent=percent, price=price, ratio=ratio))
        return levels

    def trailing_stop(
        self,
        entry: float,
        current: float,
        direction: TradeDirection,
        atr: float,
        multiplier: Optional[float] = None,
    ) -> TrailingStop:
        """ATR trailing stop; `should_move` once the stop would lock in profit."""
        _check_entry(entry)
        multiplier = multiplier if multiplier is not None else self.config.trailing_multiplier

        if direction == TradeDirection.LONG:
            stop = current - atr * multiplier
            profit = current - entry
            should_move = current > entry and stop > entry
        else:
            stop = current + atr * multiplier
            profit = entry - current
            should_move = current < entry and stop < entry

        return TrailingStop(
            trailing_stop=stop,
            profit=profit,
            profit_percent=profit / entry * 100,
            should_move=should_move,
        )

    # ──────────────────────────────────────────
    # Portfolio
    # ──────────────────────────────────────────

    def portfolio_heat(self, positions: Sequence[OpenPosition], account_size: float) -> PortfolioHeat:
        """Total open risk as a percent of the account."""
        _check_account(account_size)
        cfg = self.config
        total_heat = sum(_position_risk(p) / account_size * 100 for p in positions)
        return PortfolioHeat(
            total_heat=total_heat,
            is_overheated=total_heat > cfg.max_heat,
            max_positions=cfg.max_positions,
            available_risk=max(0.0, cfg.max_heat - total_heat),
            open_positions=len(positions),
        )

    @staticmethod
    def position_risk(positions: Sequence[OpenPosition], account_size: float) -> PositionRisk:
        _check_account(account_size)
        total_risk = sum(_position_risk(p) for p in positions)
        total_exposure = sum(p.entry * p.quantity for p in positions)
        return PositionRisk(
            total_risk=total_risk,
            total_exposure=total_exposure,
            risk_percent=total_risk / account_size * 100,
            exposure_percent=total_exposure / account_size * 100,
            number_of_positions=len(positions),
            avg_risk_per_trade=total_risk / len(positions) if positions else 0.0,
        )

    # ──────────────────────────────────────────
    # Strategy Statistics
    # ──────────────────────────────────────────

    def expected_value(self, setup: TradeSetup, win_rate: Optional[float] = None) -> ExpectedValue:
        """Per-unit expected value of a setup at a historical win rate."""
        _check_prices(setup.entry, setup.stop_loss)
        win_rate = win_rate if win_rate is not None else self.config.default_win_rate
        risk = abs(setup.entry - setup.stop_loss)
        reward = abs(setup.take_profit - setup.entry)
        ev = win_rate * reward - (1 - win_rate) * risk
        return ExpectedValue(
            expected_value=ev,
            expected_percent=ev / setup.entry * 100,
            is_positive=ev > 0,
            win_rate=win_rate,
            risk_reward=reward / risk,
        )

    def sharpe_ratio(self, returns: Sequence[float], risk_free_rate: float = 0.02) -> SharpeRatio:
        """Annualized Sharpe ratio of per-period returns.

        Uses the population standard deviation; zero volatility gives 0.
        """
        if not len(returns):
            raise InvalidRiskInputError("returns must not be empty")

        periods = self.config.periods_per_year
        values = np.asarray(returns, dtype=float)
        avg = float(values.mean())
        std = float(values.std())
        excess = avg - risk_free_rate / periods
        sharpe = excess / std if std else 0.0

        return SharpeRatio(
            sharpe=sharpe * math.sqrt(periods),
            avg_return=avg * periods * 100,
            volatility=std * math.sqrt(periods) * 100,
        )

    def max_drawdown(self, equity_curve: Sequence[float]) -> Drawdown:
        """Largest peak-to-trough decline, in percent of the peak."""
        if not len(equity_curve):
            raise InvalidRiskInputError("equity_curve must not be empty")
        if equity_curve[0] <= 0:
            raise InvalidRiskInputError(f"equity must start positive, got {equity_curve[0]}")

        equity = np.asarray(equity_curve, dtype=float)
        peaks = np.maximum.accumulate(equity)
        worst = float(((peaks - equity) / peaks * 100).max())
        return Drawdown(max_drawdown=worst, is_acceptable=worst < self.config.acceptable_drawdown)

    # ──────────────────────────────────────────
    # Scoring & Recommendation
    # ──────────────────────────────────────────

    @staticmethod
    def trade_score(setup: TradeSetup, rr: RiskRewardBreakdown, position: PositionSizing) -> float:
        """0-100 score: confidence 40, risk/reward 30, stop width 20, leverage 10."""
        score = setup.confidence * 40
        score += min(30.0, rr.ratio / 3 * 30)
        score += max(0.0, 20 - position.stop_percent * 5)
        score += max(0, 10 - position.leverage)
        return min(100.0, max(0.0, score))

    def recommendation(
        self,
        setup: TradeSetup,
        rr: RiskRewardBreakdown,
        position: PositionSizing,
    ) -> TradeRecommendation:
        """TAKE_TRADE unless a check fails; SKIP_TRADE wins over WAIT."""
        cfg = self.config
        issues = []
        action = RecommendationAction.TAKE_TRADE

        if rr.ratio < cfg.min_risk_reward:
            issues.append(f"Risk/Reward below {cfg.min_risk_reward}:1")
            action = RecommendationAction.REDUCE_SIZE

        if position.stop_percent > cfg.max_stop_percent:
            issues.append(f"Stop loss too wide (>{cfg.max_stop_percent:g}%)")
            action = RecommendationAction.REDUCE_SIZE

        if position.leverage > cfg.max_leverage:
            issues.append("Excessive leverage required")
            action = RecommendationAction.SKIP_TRADE

        if setup.confidence < cfg.min_confidence:
            issues.append("Low setup confidence")
            if action != RecommendationAction.SKIP_TRADE:
                action = RecommendationAction.WAIT

        return TradeRecommendation(
            action=action,
            issues=issues,
            score=self.trade_score(setup, rr, position),
        )

    @traced("risk_engine.generate_report")
    def generate_report(
        self,
        setup: TradeSetup,
        account_size: float,
        risk_percent: float,
    ) -> RiskReport:
        """Everything needed to act on a setup at the given account risk."""
        position = self.size_position(setup.entry, setup.stop_loss, account_size, risk_percent)
        rr = self.risk_reward(setup.entry, setup.stop_loss, setup.take_profit)
        recommendation = self.recommendation(setup, rr, position)

        log.info(
            "risk.report",
            setup=setup.type.value,
            direction=setup.direction.value,
            action=recommendation.action.value,
            score=round(recommendation.score, 2),
            max_loss=format_currency(position.max_loss),
            issues=len(recommendation.issues),
        )
        return RiskReport(
            setup=setup,
            position=position,
            risk_reward=rr,
            break_even=self.break_even(setup.entry, setup.direction),
            partials=self.partial_take_profits(setup.entry, setup.take_profit, setup.direction),
            recommendation=recommendation,
        )


# ──────────────────────────────────────────────
# Input checks
# ──────────────────────────────────────────────

def _check_entry(entry: float) -> None:
    if entry <= 0:
        raise InvalidRiskInputError(f"entry must be positive, got {entry}")


def _check_prices(entry: float, stop: float) -> None:
    _check_entry(entry)
    if entry == stop:
        raise InvalidRiskInputError(f"entry and stop are both {entry}; risk is zero")


def _check_account(account_size: float) -> None:
    if account_size <= 0:
        raise InvalidRiskInputError(f"account_size must be positive, got {account_size}")


def _position_risk(position: OpenPosition) -> float:
    return abs(position.entry - position.stop_loss) * position.quantity

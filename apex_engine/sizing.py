"""
Position Sizing

Converts an ATR-based stop distance and the configured risk budget into a
whole number of contracts.
"""

import math
from dataclasses import dataclass

from .config import PlanConfig, SizingConfig
from .contracts import InstrumentSpec


@dataclass(frozen=True)
class SizingResult:
    quantity: int
    stop_ticks: int
    risk_per_contract: float
    max_risk: float

    @property
    def worst_case_risk(self) -> float:
        return self.quantity * self.risk_per_contract


def max_risk_dollars(plan: PlanConfig, sizing: SizingConfig) -> float:
    return min(sizing.risk_per_trade, plan.trailing_threshold * sizing.risk_fraction)


def compute_position_size(
    atr: float,
    stop_multiplier: float,
    instrument: InstrumentSpec,
    plan: PlanConfig,
    sizing: SizingConfig,
) -> SizingResult:
    """
    Size a trade.

    The quantity never drops below one contract; when a single contract
    already exceeds the budget, worst_case_risk exceeds max_risk.

    Example:
        ATR 10, stop multiplier 2.5 on NQ -> 100 ticks, $500 per contract;
        max risk min(750, 2500 * 0.30) = 750 -> 1 contract.
    """
    stop_distance = atr * stop_multiplier
    stop_ticks = max(1, instrument.price_to_ticks(stop_distance))
    risk_per_contract = stop_ticks * instrument.tick_value
    max_risk = max_risk_dollars(plan, sizing)

    quantity = int(math.floor(max_risk / max(1.0, risk_per_contract)))
    quantity = max(1, min(quantity, sizing.max_contracts))

    if quantity * risk_per_contract > max_risk:
        quantity = max(1, int(math.floor(max_risk / risk_per_contract)))

    return SizingResult(
        quantity=quantity,
        stop_ticks=stop_ticks,
        risk_per_contract=risk_per_contract,
        max_risk=max_risk,
    )

"""
Futures contract specifications for NQ, MNQ, ES, MES, and MGC

Tick size and per-contract tick value feed position sizing and the
tick-based stop/target arithmetic of the strategies.
"""

import math
from dataclasses import dataclass
from typing import Dict
import logging

logger = logging.getLogger(__name__)


# Contract Specifications
CONTRACT_SPECS = {
    'NQ': {
        'name': 'E-mini Nasdaq-100',
        'exchange': 'CME',
        'currency': 'USD',
        'multiplier': 20,
        'tick_size': 0.25,
        'tick_value': 5.00,
    },
    'MNQ': {
        'name': 'Micro E-mini Nasdaq-100',
        'exchange': 'CME',
        'currency': 'USD',
        'multiplier': 2,
        'tick_size': 0.25,
        'tick_value': 0.50,
    },
    'ES': {
        'name': 'E-mini S&P 500',
        'exchange': 'CME',
        'currency': 'USD',
        'multiplier': 50,
        'tick_size': 0.25,
        'tick_value': 12.50,
    },
    'MES': {
        'name': 'Micro E-mini S&P 500',
        'exchange': 'CME',
        'currency': 'USD',
        'multiplier': 5,
        'tick_size': 0.25,
        'tick_value': 1.25,
    },
    'MGC': {
        'name': 'Micro Gold',
        'exchange': 'COMEX',
        'currency': 'USD',
        'multiplier': 10,
        'tick_size': 0.10,
        'tick_value': 1.00,
    }
}


@dataclass(frozen=True)
class InstrumentSpec:
    """Tick geometry of the traded instrument."""
    symbol: str
    tick_size: float
    tick_value: float

    def __post_init__(self):
        if self.tick_size <= 0:
            raise ValueError(f"Tick size must be > 0, got {self.tick_size}")
        if self.tick_value <= 0:
            raise ValueError(f"Tick value must be > 0, got {self.tick_value}")

    def ticks_to_price(self, ticks: float) -> float:
        return ticks * self.tick_size

    def price_to_ticks(self, distance: float) -> int:
        """Whole ticks needed to cover a price distance (rounded up)."""
        return int(math.ceil(distance / self.tick_size))


def get_contract_info(symbol: str) -> Dict:
    """
    Get detailed contract specifications.

    Args:
        symbol: Contract symbol (NQ, MNQ, ES, MES, or MGC)

    Returns:
        Dictionary with contract specifications
    """
    if symbol not in CONTRACT_SPECS:
        raise ValueError(f"Unknown symbol: {symbol}. Must be one of {list(CONTRACT_SPECS.keys())}")

    return CONTRACT_SPECS[symbol].copy()


def get_instrument(symbol: str) -> InstrumentSpec:
    """
    Build the instrument spec for a known symbol.

    Example:
        >>> get_instrument('NQ').tick_value
        5.0
    """
    info = get_contract_info(symbol)
    return InstrumentSpec(symbol=symbol, tick_size=info['tick_size'], tick_value=info['tick_value'])

"""
Apex decision engine

Bar-driven futures signal engine for funded-account evaluations: streaming
indicators, session-anchored VWAP and opening range, trend/chop regime,
pending breakout setups, position sizing and prop-firm risk guards.
"""
from .config import EngineConfig, ConfigError, load_config
from .models import (
    Bar, BarEvent, Timeframe, Direction, PositionSide, IntentAction,
    TradeIntent, AccountSnapshot, ClosedTrade, FLAT_ACCOUNT,
)
from .engine import CoreState, initialize, on_bar, AdaptiveEngine, create_engine
from .momentum import MomentumEngine, initialize_momentum, on_bar_momentum

__all__ = [
    # Configuration
    'EngineConfig',
    'ConfigError',
    'load_config',

    # Data model
    'Bar',
    'BarEvent',
    'Timeframe',
    'Direction',
    'PositionSide',
    'IntentAction',
    'TradeIntent',
    'AccountSnapshot',
    'ClosedTrade',
    'FLAT_ACCOUNT',

    # Engines
    'CoreState',
    'initialize',
    'on_bar',
    'AdaptiveEngine',
    'create_engine',
    'MomentumEngine',
    'initialize_momentum',
    'on_bar_momentum',
]

"""
Streaming indicator system for bar-by-bar decision making
"""
from .base import Indicator, validate_period, safe_div
from .moving_averages import SMA, EMA, StdDev
from .volatility import ATR, BollingerBandsModified
from .oscillators import RSI, ADX, WaveTrend

__all__ = [
    # Base
    'Indicator',
    'validate_period',
    'safe_div',

    # Moving averages
    'SMA',
    'EMA',
    'StdDev',

    # Volatility
    'ATR',
    'BollingerBandsModified',

    # Oscillators
    'RSI',
    'ADX',
    'WaveTrend',
]

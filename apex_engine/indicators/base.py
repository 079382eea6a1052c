"""
Base Indicator Class

Provides the abstract base class for streaming technical indicators.

Indicators are bar-driven recurrences: each call to update() consumes exactly
one new sample and may depend only on samples already seen. Values are None
until the indicator has enough history.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import logging

import pandas as pd

from ..models import Bar

logger = logging.getLogger(__name__)


class Indicator(ABC):
    """
    Base class for all streaming indicators.

    Subclasses must implement:
    - update(): Consume one sample and return the new value (or None)
    - reset(): Drop all recurrence state

    Subclasses whose constructor keyword arguments match self.params can be
    replayed over a DataFrame with calculate().
    """

    # Column consumed by scalar indicators; None means the full OHLCV bar
    source: Optional[str] = None

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        """
        Initialize indicator with parameters.

        Args:
            params: Dictionary of indicator parameters
        """
        self.params = params or {}
        self._value: Optional[float] = None
        self._count = 0

    @abstractmethod
    def update(self, sample) -> Optional[float]:
        """
        Consume one sample (a Bar, or a float for scalar indicators).

        Returns:
            The new indicator value, or None while not ready
        """
        pass

    @abstractmethod
    def reset(self):
        """Drop all recurrence state."""
        pass

    @property
    def value(self) -> Optional[float]:
        return self._value

    @property
    def is_ready(self) -> bool:
        return self._value is not None

    @property
    def count(self) -> int:
        """Number of samples consumed."""
        return self._count

    def outputs(self) -> Dict[str, Optional[float]]:
        """Named outputs for the current bar (multi-line indicators override)."""
        return {'value': self._value}

    def validate_dataframe(self, df: pd.DataFrame) -> bool:
        """
        Validate that DataFrame has required columns.

        Raises:
            ValueError if invalid
        """
        required = ['time', 'open', 'high', 'low', 'close', 'volume']
        missing = [col for col in required if col not in df.columns]

        if missing:
            raise ValueError(f"DataFrame missing required columns: {missing}")

        if df.empty:
            raise ValueError("DataFrame is empty")

        return True

    def calculate(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Replay a DataFrame of bars through a fresh instance.

        Produces exactly the values incremental updates would have produced
        bar by bar. Not-ready rows hold NaN.

        Args:
            df: DataFrame with OHLCV data (columns: time, open, high, low, close, volume)

        Returns:
            DataFrame with 'time' column and one column per output
        """
        self.validate_dataframe(df)
        fresh = self.__class__(**self.params)

        rows = []
        for record in df.to_dict('records'):
            if fresh.source is not None:
                fresh.update(float(record[fresh.source]))
            else:
                fresh.update(Bar(
                    time=pd.Timestamp(record['time']).to_pydatetime(),
                    open=float(record['open']),
                    high=float(record['high']),
                    low=float(record['low']),
                    close=float(record['close']),
                    volume=float(record['volume']),
                ))
            row = {'time': record['time']}
            row.update(fresh.outputs())
            rows.append(row)

        result = pd.DataFrame(rows)
        value_columns = [col for col in result.columns if col != 'time']
        result[value_columns] = result[value_columns].astype(float)
        return result


def validate_period(period: int, min_period: int = 1) -> int:
    """Validate period parameter"""
    if isinstance(period, bool) or not isinstance(period, int):
        raise ValueError(f"Period must be integer, got {type(period)}")

    if period < min_period:
        raise ValueError(f"Period must be >= {min_period}, got {period}")

    return period


def safe_div(numerator: float, denominator: Optional[float]) -> float:
    """Ratio with zero/NaN/None denominators mapped to 0."""
    if denominator is None or denominator != denominator or denominator == 0:
        return 0.0
    return numerator / denominator

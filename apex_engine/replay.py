"""
Historical Replay Harness

Feeds a CSV of primary bars through an engine in timestamp order. Trend and
daily bars are aggregated from the primary series with pandas and delivered
only after their last primary bar, so no bar is ever seen before it closes.

The account is held flat; the output is a signal audit, not a fill
simulation.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from .models import (
    AccountSnapshot, Bar, BarEvent, EXCHANGE_TZ, FLAT_ACCOUNT, IntentAction,
    Timeframe, TradeIntent,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['time', 'open', 'high', 'low', 'close', 'volume']


@dataclass
class ReplayResult:
    intents: List[TradeIntent] = field(default_factory=list)
    primary_bars: int = 0
    trend_bars: int = 0
    daily_bars: int = 0

    @property
    def entries(self) -> List[TradeIntent]:
        return [i for i in self.intents if i.action == IntentAction.ENTER]

    def to_frame(self) -> pd.DataFrame:
        columns = ['action', 'side', 'quantity', 'tag', 'reason', 'bar_time',
                   'entry_price', 'stop_price', 'target_price']
        return pd.DataFrame([i.to_dict() for i in self.intents], columns=columns)

    def summary(self) -> Dict[str, int]:
        return {
            'primary_bars': self.primary_bars,
            'trend_bars': self.trend_bars,
            'daily_bars': self.daily_bars,
            'intents': len(self.intents),
            'entries': len(self.entries),
        }


def normalize_bars(df: pd.DataFrame, tz=EXCHANGE_TZ) -> pd.DataFrame:
    """
    Validate columns and convert 'time' to naive exchange-local datetimes.

    Numeric times are unix seconds (UTC); aware times are converted; naive
    times are taken as already exchange-local.
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"DataFrame missing required columns: {missing}")

    df = df[REQUIRED_COLUMNS].copy()
    if pd.api.types.is_numeric_dtype(df['time']):
        times = pd.to_datetime(df['time'], unit='s', utc=True)
    else:
        times = pd.to_datetime(df['time'])

    if times.dt.tz is not None:
        times = times.dt.tz_convert(tz).dt.tz_localize(None)

    df['time'] = times
    df['volume'] = df['volume'].fillna(0.0)
    df = df.sort_values('time').reset_index(drop=True)
    return df


def load_bars_csv(path: Union[str, Path], tz=EXCHANGE_TZ) -> pd.DataFrame:
    """Load primary OHLCV bars from a CSV file."""
    df = pd.read_csv(path)
    df = normalize_bars(df, tz)
    logger.info(f"Loaded {len(df)} bars from {path} ({df['time'].iloc[0]} -> {df['time'].iloc[-1]})")
    return df


def resample_bars(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """
    Aggregate primary bars into a coarser timeframe.

    Buckets are labeled with their start time, [09:30, 09:45). The
    'closes_at' column holds the row index of the last primary bar in each
    bucket.
    """
    df_copy = df.copy()
    df_copy['row'] = range(len(df_copy))
    df_copy.set_index('time', inplace=True)

    aggregated = df_copy.resample(rule, label='left', closed='left').agg({
        'open': 'first',
        'high': 'max',
        'low': 'min',
        'close': 'last',
        'volume': 'sum',
        'row': 'max',
    }).dropna()

    aggregated['time'] = aggregated.index
    aggregated.reset_index(drop=True, inplace=True)
    aggregated['closes_at'] = aggregated['row'].astype(int)
    return aggregated[['time', 'open', 'high', 'low', 'close', 'volume', 'closes_at']]


def _to_bar(record: dict) -> Bar:
    return Bar.from_dict(dict(record, time=pd.Timestamp(record['time']).to_pydatetime()))


def build_events(df: pd.DataFrame, trend_minutes: int) -> List[BarEvent]:
    """
    Interleave primary, trend and daily events.

    An aggregated bar follows the primary bar that completes it.
    """
    closing: Dict[int, List[BarEvent]] = {}
    for timeframe, rule in ((Timeframe.TREND, f'{trend_minutes}min'), (Timeframe.DAILY, '1D')):
        for record in resample_bars(df, rule).to_dict('records'):
            closing.setdefault(record['closes_at'], []).append(BarEvent(timeframe, _to_bar(record)))

    events = []
    for row, record in enumerate(df.to_dict('records')):
        events.append(BarEvent(Timeframe.PRIMARY, _to_bar(record)))
        events.extend(closing.get(row, []))
    return events


def run_replay(df: pd.DataFrame, engine, account: Optional[AccountSnapshot] = None) -> ReplayResult:
    """
    Replay bars through an engine (AdaptiveEngine or MomentumEngine).

    Args:
        df: Normalized primary bars
        engine: Object with on_bar(event, account) -> List[TradeIntent]
        account: Static account snapshot (default: flat, no trades)
    """
    account = account or FLAT_ACCOUNT
    trend_minutes = engine.config.trend.trend_tf_minutes
    result = ReplayResult()

    for event in build_events(df, trend_minutes):
        if event.timeframe == Timeframe.PRIMARY:
            result.primary_bars += 1
        elif event.timeframe == Timeframe.TREND:
            result.trend_bars += 1
        else:
            result.daily_bars += 1
        result.intents.extend(engine.on_bar(event, account))

    logger.info(f"Replay complete: {result.summary()}")
    return result

"""
Engine Configuration

Named, typed, range-validated inputs for the decision engine, grouped the
way the strategy parameters are grouped on the trading platform. Loaded from
config.yaml (or a plain dict) and validated before any bar is processed.
"""

import logging
from dataclasses import dataclass, field, fields, asdict
from datetime import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pytz
import yaml

from .contracts import InstrumentSpec, get_contract_info

logger = logging.getLogger(__name__)

STRATEGIES = ('adaptive', 'momentum')


class ConfigError(ValueError):
    """Structurally invalid configuration value."""


def parse_clock(value: Union[str, time]) -> time:
    """Parse an 'HH:MM' (or 'HH:MM:SS') exchange clock time."""
    if isinstance(value, time):
        return value
    try:
        parts = [int(p) for p in str(value).split(':')]
        return time(*parts)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid clock time {value!r}: expected HH:MM") from e


# ═══════════════════════════════════════════════════════════════════════════
# SECTION BASE
# ═══════════════════════════════════════════════════════════════════════════

class _Section:
    """
    Shared validation for configuration sections.

    RANGES maps field name -> (min, max); None leaves a side open. Fields
    whose default is an int must be given as int, bool fields as bool.
    """

    RANGES: Dict[str, Tuple[Optional[float], Optional[float]]] = {}
    CLOCKS: Tuple[str, ...] = ()

    def validate(self):
        section = self.__class__.__name__
        for f in fields(self):
            value = getattr(self, f.name)
            default = f.default

            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ConfigError(f"{section}.{f.name} must be a bool, got {value!r}")
                continue
            if isinstance(default, int) and (isinstance(value, bool) or not isinstance(value, int)):
                raise ConfigError(f"{section}.{f.name} must be an integer, got {value!r}")
            if isinstance(default, float) and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ConfigError(f"{section}.{f.name} must be a number, got {value!r}")

            if f.name in self.RANGES:
                lo, hi = self.RANGES[f.name]
                if lo is not None and value < lo:
                    raise ConfigError(f"{section}.{f.name}={value} is below minimum {lo}")
                if hi is not None and value > hi:
                    raise ConfigError(f"{section}.{f.name}={value} is above maximum {hi}")

        for name in self.CLOCKS:
            parse_clock(getattr(self, name))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
        return cls(**data)


# ═══════════════════════════════════════════════════════════════════════════
# SECTIONS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PlanConfig(_Section):
    """Funded-account plan dollar amounts."""
    account_start_balance: float = 50000.0
    profit_target: float = 3000.0
    trailing_threshold: float = 2500.0

    RANGES = {
        'account_start_balance': (0, None),
        'profit_target': (0, None),
        'trailing_threshold': (0, None),
    }


@dataclass
class SizingConfig(_Section):
    max_contracts: int = 2
    risk_per_trade: float = 750.0
    risk_fraction: float = 0.30   # of the trailing threshold

    RANGES = {
        'max_contracts': (1, 100),
        'risk_per_trade': (0, None),
        'risk_fraction': (0.1, 0.5),
    }


@dataclass
class InstrumentConfig(_Section):
    """Traded symbol; tick_size / tick_value of 0 take the contract table values."""
    symbol: str = 'NQ'
    tick_size: float = 0.0
    tick_value: float = 0.0

    RANGES = {
        'tick_size': (0, None),
        'tick_value': (0, None),
    }

    def to_spec(self) -> InstrumentSpec:
        tick_size, tick_value = self.tick_size, self.tick_value
        if not tick_size or not tick_value:
            try:
                info = get_contract_info(self.symbol)
            except ValueError as e:
                raise ConfigError(str(e)) from e
            tick_size = tick_size or info['tick_size']
            tick_value = tick_value or info['tick_value']
        return InstrumentSpec(symbol=self.symbol, tick_size=tick_size, tick_value=tick_value)


@dataclass
class SessionConfig(_Section):
    """Named trading windows in exchange-local time."""
    use_sessions: bool = True
    asia: bool = True
    europe: bool = True
    ny: bool = True
    asia_start: str = '18:00'
    asia_end: str = '02:00'
    europe_start: str = '02:00'
    europe_end: str = '08:30'
    ny_start: str = '09:30'
    ny_end: str = '16:00'
    timezone: str = 'US/Eastern'

    CLOCKS = ('asia_start', 'asia_end', 'europe_start', 'europe_end', 'ny_start', 'ny_end')

    def validate(self):
        super().validate()
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown timezone {self.timezone!r}") from e


@dataclass
class TrendConfig(_Section):
    """Higher-timeframe trend EMAs (also the primary fast/slow EMAs)."""
    trend_tf_minutes: int = 15
    ema_fast_len: int = 21
    ema_slow_len: int = 55

    RANGES = {
        'trend_tf_minutes': (1, 1440),
        'ema_fast_len': (1, 200),
        'ema_slow_len': (1, 200),
    }


@dataclass
class VolatilityConfig(_Section):
    atr_len: int = 14
    atr_daily_len: int = 14

    RANGES = {
        'atr_len': (1, 100),
        'atr_daily_len': (1, 100),
    }


@dataclass
class OpeningRangeConfig(_Section):
    or_minutes: int = 15
    or_atr_frac_trend: float = 0.33

    RANGES = {
        'or_minutes': (1, 120),
        'or_atr_frac_trend': (0.01, 2.0),
    }


@dataclass
class RegimeConfig(_Section):
    adx_len: int = 14
    adx_min_trend: float = 18.0
    ema_spread_min: float = 0.35
    vwap_slope_min: float = 0.10
    vwap_slope_lookback: int = 5
    allow_chop_in_ny: bool = False

    RANGES = {
        'adx_len': (1, 100),
        'adx_min_trend': (1, 100),
        'ema_spread_min': (0.01, 5.0),
        'vwap_slope_min': (0.01, 2.0),
        'vwap_slope_lookback': (1, 100),
    }


@dataclass
class TrendSetupConfig(_Section):
    break_buffer_ticks: int = 2
    setup_expiry_bars: int = 6
    use_pullback_vwap: bool = True
    pull_band_atr: float = 0.30
    use_pullback_ema: bool = True

    RANGES = {
        'break_buffer_ticks': (0, 50),
        'setup_expiry_bars': (1, 50),
        'pull_band_atr': (0.01, 2.0),
    }


@dataclass
class ChopConfig(_Section):
    dev_mult_atr: float = 1.10
    rsi_len: int = 14
    rsi_low: float = 35.0
    rsi_high: float = 65.0
    chop_tp_atr: float = 0.80

    RANGES = {
        'dev_mult_atr': (0.1, 5.0),
        'rsi_len': (1, 100),
        'rsi_low': (1, 50),
        'rsi_high': (50, 99),
        'chop_tp_atr': (0.1, 5.0),
    }


@dataclass
class RiskConfig(_Section):
    """ATR multiples for stop-loss and take-profit."""
    stop_mult_atr: float = 0.85
    tp_mult_atr: float = 1.20

    RANGES = {
        'stop_mult_atr': (0.1, 5.0),
        'tp_mult_atr': (0.1, 10.0),
    }


@dataclass
class ExecutionConfig(_Section):
    max_signals_per_session: int = 4
    cooldown_bars: int = 2

    RANGES = {
        'max_signals_per_session': (1, 100),
        'cooldown_bars': (0, 100),
    }


@dataclass
class GuardConfig(_Section):
    """Prop-firm guards. A value of 0 disables the corresponding guard."""
    daily_loss_cap: float = 0.0
    daily_profit_lock: float = 0.0
    max_consecutive_losses: int = 0
    max_trailing_drawdown: float = 0.0
    flatten_minutes: int = 1
    session_close: str = '15:59'

    RANGES = {
        'daily_loss_cap': (0, 100000),
        'daily_profit_lock': (0, 100000),
        'max_consecutive_losses': (0, 20),
        'max_trailing_drawdown': (0, 100000),
        'flatten_minutes': (0, 120),
    }
    CLOCKS = ('session_close',)


@dataclass
class WaveTrendConfig(_Section):
    channel_length: int = 10
    average_length: int = 21
    signal_length: int = 4
    overbought: float = 60.0
    oversold: float = -60.0

    RANGES = {
        'channel_length': (1, None),
        'average_length': (1, None),
        'signal_length': (1, None),
        'overbought': (30, None),
        'oversold': (-100, 0),
    }


@dataclass
class BollingerConfig(_Section):
    period: int = 20
    std_dev_multiplier: float = 2.0
    expansion_multiplier: float = 2.5
    squeeze_threshold: float = 0.02

    RANGES = {
        'period': (1, None),
        'std_dev_multiplier': (0.1, None),
        'expansion_multiplier': (0.1, None),
        'squeeze_threshold': (0.0, 1.0),
    }


@dataclass
class MomentumConfig(_Section):
    """Inputs of the EMA/WaveTrend/Bollinger momentum strategy."""
    bars_required: int = 50
    atr_period: int = 14
    atr_stop_multiplier: float = 2.5
    target_r_multiple: float = 2.0
    minutes_before_close: int = 2
    rth_only: bool = True
    rth_start: str = '08:30'
    rth_end: str = '15:00'
    adx_period: int = 14
    min_adx: float = 25.0
    fast_ema_period: int = 21
    slow_ema_period: int = 50
    volume_ma_period: int = 20
    min_volume_multiplier: float = 1.2
    require_wt_confirmation: bool = True
    require_volatility_expansion: bool = True
    require_volume_confirmation: bool = True
    use_liquidity_zone_filter: bool = True

    RANGES = {
        'bars_required': (1, None),
        'atr_period': (1, 100),
        'atr_stop_multiplier': (0.1, 10.0),
        'target_r_multiple': (0.1, 10.0),
        'minutes_before_close': (1, 60),
        'adx_period': (1, 100),
        'min_adx': (0, 100),
        'fast_ema_period': (1, 200),
        'slow_ema_period': (1, 200),
        'volume_ma_period': (1, 200),
        'min_volume_multiplier': (0, None),
    }
    CLOCKS = ('rth_start', 'rth_end')


# ═══════════════════════════════════════════════════════════════════════════
# ENGINE CONFIG
# ═══════════════════════════════════════════════════════════════════════════

_SECTIONS = {
    'plan': PlanConfig,
    'sizing': SizingConfig,
    'instrument': InstrumentConfig,
    'sessions': SessionConfig,
    'trend': TrendConfig,
    'volatility': VolatilityConfig,
    'opening_range': OpeningRangeConfig,
    'regime': RegimeConfig,
    'trend_setup': TrendSetupConfig,
    'chop': ChopConfig,
    'risk': RiskConfig,
    'execution': ExecutionConfig,
    'guards': GuardConfig,
    'wavetrend': WaveTrendConfig,
    'bollinger': BollingerConfig,
    'momentum': MomentumConfig,
}


@dataclass
class EngineConfig:
    """Complete configuration surface of the decision engine."""
    strategy: str = 'adaptive'
    debug_mode: bool = False
    plan: PlanConfig = field(default_factory=PlanConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    instrument: InstrumentConfig = field(default_factory=InstrumentConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    opening_range: OpeningRangeConfig = field(default_factory=OpeningRangeConfig)
    regime: RegimeConfig = field(default_factory=RegimeConfig)
    trend_setup: TrendSetupConfig = field(default_factory=TrendSetupConfig)
    chop: ChopConfig = field(default_factory=ChopConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    guards: GuardConfig = field(default_factory=GuardConfig)
    wavetrend: WaveTrendConfig = field(default_factory=WaveTrendConfig)
    bollinger: BollingerConfig = field(default_factory=BollingerConfig)
    momentum: MomentumConfig = field(default_factory=MomentumConfig)

    def validate(self) -> 'EngineConfig':
        """
        Validate every section.

        Raises:
            ConfigError on the first invalid value
        """
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"strategy must be one of {STRATEGIES}, got {self.strategy!r}")
        if not isinstance(self.debug_mode, bool):
            raise ConfigError(f"debug_mode must be a bool, got {self.debug_mode!r}")

        for name in _SECTIONS:
            getattr(self, name).validate()

        self.instrument.to_spec()
        return self

    @property
    def instrument_spec(self) -> InstrumentSpec:
        return self.instrument.to_spec()

    @property
    def min_bars_required(self) -> int:
        """Primary bars needed before the adaptive path acts."""
        slowest = max(self.trend.ema_slow_len, self.volatility.atr_len,
                      self.chop.rsi_len, self.regime.adx_len)
        return slowest + self.regime.vwap_slope_lookback + 5

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EngineConfig':
        data = dict(data or {})
        unknown = set(data) - set(_SECTIONS) - {'strategy', 'debug_mode'}
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {sorted(unknown)}")

        kwargs = {name: section.from_dict(data.get(name)) for name, section in _SECTIONS.items()}
        if 'strategy' in data:
            kwargs['strategy'] = data['strategy']
        if 'debug_mode' in data:
            kwargs['debug_mode'] = data['debug_mode']
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load and validate configuration from a YAML file.

    Args:
        path: Path to config.yaml

    Returns:
        Validated EngineConfig
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found at {path}")

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    config = EngineConfig.from_dict(data).validate()
    logger.info(f"Loaded configuration from {path} (strategy={config.strategy})")
    return config

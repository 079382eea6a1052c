"""
Momentum Strategy (EMA trend + WaveTrend + Modified Bollinger)

Single-timeframe alternative to the adaptive engine. Entries require an EMA
trend with ADX strength; WaveTrend confirmation, Bollinger bandwidth
expansion, volume confirmation and the liquidity-zone filter are optional
checks. Stops are ATR-based in whole ticks with an R-multiple target.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from .config import EngineConfig, MomentumConfig, parse_clock
from .contracts import InstrumentSpec
from .indicators import ADX, ATR, EMA, SMA, BollingerBandsModified, WaveTrend
from .models import (
    AccountSnapshot, Bar, BarEvent, Direction, FLAT_ACCOUNT, IntentBatch,
    IntentSink, Timeframe, TradeIntent,
)
from .risk import FLAT_BEFORE_CLOSE, RiskGuard
from .sizing import compute_position_size

logger = logging.getLogger(__name__)

MAX_LIQUIDITY_ZONES = 20
ZONE_VOLUME_MULT = 1.5
ZONE_RANGE_CONTRACTION = 0.8
ZONE_MIN_SEPARATION_ATR = 0.5
ZONE_TOLERANCE_ATR = 1.0
ZONE_RANGE_LOOKBACK = 5


# ═══════════════════════════════════════════════════════════════════════════
# LIQUIDITY ZONES
# ═══════════════════════════════════════════════════════════════════════════

class LiquidityZones:
    """
    Midpoints of high-volume, narrow-range bars.

    A bar qualifies when volume >= 1.5x the volume SMA and its range is below
    0.8x the mean range of the previous five bars. Zones closer than 0.5 ATR
    to an existing one are ignored; only the latest 20 are kept.
    """

    def __init__(self):
        self.zones: deque = deque(maxlen=MAX_LIQUIDITY_ZONES)

    def clear(self):
        self.zones.clear()

    def __len__(self):
        return len(self.zones)

    def update(self, bar: Bar, recent: List[Bar], volume_sma: Optional[float],
               atr: Optional[float]) -> Optional[float]:
        """
        Args:
            bar: Current bar
            recent: The bars before `bar`, oldest first
            volume_sma: Volume SMA including `bar`

        Returns:
            The zone price added, or None
        """
        if volume_sma is None or atr is None or len(recent) < ZONE_RANGE_LOOKBACK:
            return None
        if bar.volume < volume_sma * ZONE_VOLUME_MULT:
            return None

        avg_range = sum(b.range for b in recent[-ZONE_RANGE_LOOKBACK:]) / ZONE_RANGE_LOOKBACK
        if bar.range >= avg_range * ZONE_RANGE_CONTRACTION:
            return None

        price = (bar.high + bar.low) / 2.0
        if any(abs(price - zone) < atr * ZONE_MIN_SEPARATION_ATR for zone in self.zones):
            return None

        self.zones.append(price)
        logger.debug(f"[Zones] Liquidity zone at {price:.2f} ({len(self.zones)} tracked)")
        return price

    def is_near(self, price: float, atr: float) -> bool:
        if not self.zones:
            return True
        tolerance = atr * ZONE_TOLERANCE_ATR
        return any(abs(price - zone) <= tolerance for zone in self.zones)


# ═══════════════════════════════════════════════════════════════════════════
# STATE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class MomentumState:
    config: EngineConfig
    instrument: InstrumentSpec
    guard: RiskGuard
    wavetrend: WaveTrend
    bollinger: BollingerBandsModified
    atr: ATR
    adx: ADX
    ema_fast: EMA
    ema_slow: EMA
    volume_sma: SMA
    zones: LiquidityZones = field(default_factory=LiquidityZones)
    history: deque = field(default_factory=lambda: deque(maxlen=ZONE_RANGE_LOOKBACK + 1))
    bar_index: int = -1


def initialize_momentum(config: Optional[EngineConfig] = None) -> MomentumState:
    config = (config or EngineConfig(strategy='momentum')).validate()
    m = config.momentum
    wt = config.wavetrend
    bb = config.bollinger

    # Close-out timing is handled here with minutes_before_close
    guard_cfg = replace(config.guards, flatten_minutes=0)

    state = MomentumState(
        config=config,
        instrument=config.instrument_spec,
        guard=RiskGuard(guard_cfg, config.plan.account_start_balance),
        wavetrend=WaveTrend(wt.channel_length, wt.average_length, wt.signal_length,
                            wt.overbought, wt.oversold),
        bollinger=BollingerBandsModified(bb.period, bb.std_dev_multiplier,
                                         bb.expansion_multiplier, bb.squeeze_threshold),
        atr=ATR(m.atr_period),
        adx=ADX(m.adx_period),
        ema_fast=EMA(m.fast_ema_period),
        ema_slow=EMA(m.slow_ema_period),
        volume_sma=SMA(m.volume_ma_period, source='volume'),
    )
    logger.info(
        f"[Momentum] Initialized for {state.instrument.symbol}: balance ${config.plan.account_start_balance:,.0f} "
        f"target ${config.plan.profit_target:,.0f} threshold ${config.plan.trailing_threshold:,.0f}"
    )
    return state


# ═══════════════════════════════════════════════════════════════════════════
# CHECKS
# ═══════════════════════════════════════════════════════════════════════════

def _wavetrend_confirms(direction: Direction, state: MomentumState) -> bool:
    if direction == Direction.LONG:
        return state.wavetrend.is_bullish()
    return state.wavetrend.is_bearish()


def _bands_expanding(direction: Direction, state: MomentumState) -> bool:
    return state.bollinger.is_expanding()


def _volume_confirms(direction: Direction, state: MomentumState) -> bool:
    sma = state.volume_sma.value
    bar = state.history[-1]
    return sma is not None and bar.volume >= sma * state.config.momentum.min_volume_multiplier


def _near_liquidity(direction: Direction, state: MomentumState) -> bool:
    return state.zones.is_near(state.history[-1].close, state.atr.value or 0.0)


def optional_checks(cfg: MomentumConfig):
    """Checks enabled by the require/use toggles; disabled ones are skipped."""
    checks = []
    if cfg.require_wt_confirmation:
        checks.append(_wavetrend_confirms)
    if cfg.require_volatility_expansion:
        checks.append(_bands_expanding)
    if cfg.require_volume_confirmation:
        checks.append(_volume_confirms)
    if cfg.use_liquidity_zone_filter:
        checks.append(_near_liquidity)
    return checks


def trend_direction(bar: Bar, ema_fast: Optional[float], ema_slow: Optional[float]) -> Optional[Direction]:
    if ema_fast is None or ema_slow is None:
        return None
    if ema_fast > ema_slow and bar.close > ema_fast:
        return Direction.LONG
    if ema_fast < ema_slow and bar.close < ema_fast:
        return Direction.SHORT
    return None


def bollinger_confirms(direction: Direction, bar: Bar, prev_bar: Bar, middle: Optional[float]) -> bool:
    if direction == Direction.LONG:
        return (middle is not None and bar.close > middle) or bar.close > prev_bar.high
    return (middle is not None and bar.close < middle) or bar.close < prev_bar.low


# ═══════════════════════════════════════════════════════════════════════════
# BAR PROCESSING
# ═══════════════════════════════════════════════════════════════════════════

def _past_flat_cutoff(bar_time: datetime, state: MomentumState) -> bool:
    cutoff = datetime.combine(bar_time.date(), parse_clock(state.config.guards.session_close))
    return bar_time >= cutoff - timedelta(minutes=state.config.momentum.minutes_before_close)


def _in_rth(bar_time: datetime, cfg: MomentumConfig) -> bool:
    t = bar_time.time()
    return parse_clock(cfg.rth_start) <= t <= parse_clock(cfg.rth_end)


def on_bar_momentum(state: MomentumState, event: BarEvent,
                    account: AccountSnapshot = FLAT_ACCOUNT) -> Tuple[MomentumState, List[TradeIntent]]:
    """Process one bar; only primary bars drive this strategy."""
    if event.timeframe != Timeframe.PRIMARY:
        return state, []

    bar = event.bar
    cfg = state.config.momentum
    batch = IntentBatch()

    prev_bar = state.history[-1] if state.history else None
    recent = list(state.history)
    state.bar_index += 1
    state.history.append(bar)
    state.wavetrend.update(bar)
    state.bollinger.update(bar.close)
    state.atr.update(bar)
    state.adx.update(bar)
    state.ema_fast.update(bar.close)
    state.ema_slow.update(bar.close)
    state.volume_sma.update(bar.volume)

    if state.bar_index < cfg.bars_required:
        return state, []

    if state.guard.roll_day(bar.time, account):
        state.zones.clear()

    if _past_flat_cutoff(bar.time, state):
        if not account.is_flat:
            logger.info(f"[Momentum] Flat before close: exiting at {bar.time}")
            batch.add(TradeIntent.flatten(account.position, account.quantity, FLAT_BEFORE_CLOSE, bar.time))
        return state, batch.intents

    if cfg.rth_only and not _in_rth(bar.time, cfg):
        return state, []

    verdict = state.guard.evaluate(bar.time, account)
    if verdict.flatten_reason and not account.is_flat:
        batch.add(TradeIntent.flatten(account.position, account.quantity, verdict.flatten_reason, bar.time))
    if verdict.skip:
        return state, batch.intents

    if state.bar_index >= cfg.volume_ma_period + 10:
        state.zones.update(bar, recent, state.volume_sma.value, state.atr.value)

    if not account.is_flat or prev_bar is None:
        return state, []

    direction = trend_direction(bar, state.ema_fast.value, state.ema_slow.value)
    adx = state.adx.value
    if direction is None or adx is None or adx < cfg.min_adx:
        return state, []
    if not all(check(direction, state) for check in optional_checks(cfg)):
        return state, []
    if not bollinger_confirms(direction, bar, prev_bar, state.bollinger.middle):
        return state, []

    atr = state.atr.value
    if not atr or atr <= 0:
        return state, []

    sizing = compute_position_size(atr, cfg.atr_stop_multiplier, state.instrument,
                                   state.config.plan, state.config.sizing)
    if sizing.worst_case_risk > sizing.max_risk:
        logger.info(f"[Risk] Calculated risk ${sizing.worst_case_risk:.2f} exceeds max "
                    f"${sizing.max_risk:.2f}. Trading the 1-contract floor.")

    instrument = state.instrument
    target_ticks = int(math.ceil(sizing.stop_ticks * cfg.target_r_multiple))
    entry = bar.close
    stop = entry - direction.sign * instrument.ticks_to_price(sizing.stop_ticks)
    target = entry + direction.sign * instrument.ticks_to_price(target_ticks)
    tag = "Long_Entry" if direction == Direction.LONG else "Short_Entry"

    batch.add(TradeIntent.enter(direction, sizing.quantity, entry, stop, target, tag,
                                f"EMA trend, ADX {adx:.1f}", bar.time))
    logger.info(
        f"[{direction.value}] Entry at {entry:.2f}, Qty: {sizing.quantity}, "
        f"Stop: {sizing.stop_ticks} ticks, Target: {target_ticks} ticks"
    )
    return state, batch.intents


class MomentumEngine:
    """Stateful adapter mirroring AdaptiveEngine."""

    def __init__(self, config: Optional[EngineConfig] = None, sink: Optional[IntentSink] = None):
        self.state = initialize_momentum(config)
        self.sink = sink

    @property
    def config(self) -> EngineConfig:
        return self.state.config

    def on_bar(self, event: BarEvent, account: AccountSnapshot = FLAT_ACCOUNT) -> List[TradeIntent]:
        self.state, intents = on_bar_momentum(self.state, event, account)
        if self.sink is not None:
            for intent in intents:
                self.sink(intent)
        return intents

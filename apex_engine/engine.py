"""
Adaptive Decision Engine

Explicit state-in / state-out bar processing:

    state = initialize(config)
    state, intents = on_bar(state, BarEvent(Timeframe.PRIMARY, bar), account)

Trend and daily bars only update their own indicator state. A primary bar
runs, in order: session bookkeeping, warm-up gate, risk guard, VWAP,
opening range, regime, pending trigger check, new setups.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import EngineConfig
from .contracts import InstrumentSpec
from .indicators import ADX, ATR, EMA, RSI
from .models import (
    AccountSnapshot, Bar, BarEvent, Direction, FLAT_ACCOUNT, IntentBatch,
    IntentSink, Timeframe, TradeIntent,
)
from .momentum import MomentumEngine
from .regime import NO_REGIME, RegimeDecision, classify
from .risk import RiskGuard
from .sessions import SessionTracker, SessionType
from .setups import (
    PendingOutcome, PendingSetup, SetupContext, SetupKind, SignalGate,
    advance_pending, chop_brackets, entry_tag, find_chop_entry,
    find_trend_setup, trend_brackets,
)
from .sizing import compute_position_size
from .vwap import OpeningRange, SessionVWAP

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# STATE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class TrendTimeframeState:
    """Indicators fed only by closed trend-timeframe bars."""
    ema_fast: EMA
    ema_slow: EMA
    adx: ADX


@dataclass
class PrimaryIndicators:
    atr: ATR
    rsi: RSI
    ema_fast: EMA
    prev_bar: Optional[Bar] = None
    bar_index: int = -1


@dataclass
class CoreState:
    """Everything the adaptive engine owns between bars."""
    config: EngineConfig
    instrument: InstrumentSpec
    trend: TrendTimeframeState
    daily_atr: ATR
    primary: PrimaryIndicators
    sessions: SessionTracker
    vwap: SessionVWAP
    opening_range: OpeningRange
    guard: RiskGuard
    gate: SignalGate = field(default_factory=SignalGate)
    regime: RegimeDecision = NO_REGIME
    pending: Optional[PendingSetup] = None

    @property
    def warmed_up(self) -> bool:
        return (self.primary.bar_index + 1 >= self.config.min_bars_required
                and self.trend.ema_slow.is_ready)

    def daily_atr_value(self) -> Optional[float]:
        return self.daily_atr.value


def initialize(config: Optional[EngineConfig] = None) -> CoreState:
    """
    Validate the configuration and build a fresh engine state.

    Raises:
        ConfigError if any input is out of range
    """
    config = (config or EngineConfig()).validate()
    trend_cfg = config.trend

    state = CoreState(
        config=config,
        instrument=config.instrument_spec,
        trend=TrendTimeframeState(
            ema_fast=EMA(trend_cfg.ema_fast_len),
            ema_slow=EMA(trend_cfg.ema_slow_len),
            adx=ADX(config.regime.adx_len, dx_smoothing='running_sum'),
        ),
        daily_atr=ATR(config.volatility.atr_daily_len),
        primary=PrimaryIndicators(
            atr=ATR(config.volatility.atr_len),
            rsi=RSI(config.chop.rsi_len),
            ema_fast=EMA(trend_cfg.ema_fast_len),
        ),
        sessions=SessionTracker(config.sessions),
        vwap=SessionVWAP(config.regime.vwap_slope_lookback),
        opening_range=OpeningRange(minutes=config.opening_range.or_minutes),
        guard=RiskGuard(config.guards, config.plan.account_start_balance),
    )
    logger.info(
        f"[Engine] Initialized adaptive engine for {state.instrument.symbol}: "
        f"TF={trend_cfg.trend_tf_minutes}m EMA={trend_cfg.ema_fast_len}/{trend_cfg.ema_slow_len} "
        f"minBarsRequired={config.min_bars_required}"
    )
    return state


# ═══════════════════════════════════════════════════════════════════════════
# BAR PROCESSING
# ═══════════════════════════════════════════════════════════════════════════

def on_bar(state: CoreState, event: BarEvent,
           account: AccountSnapshot = FLAT_ACCOUNT) -> Tuple[CoreState, List[TradeIntent]]:
    """
    Process one closed bar.

    Args:
        state: State returned by initialize() or the previous call
        event: Closed bar tagged with its timeframe
        account: Host position and realized trade history (primary bars only)

    Returns:
        (state, intents) - state is updated in place and returned
    """
    if event.timeframe == Timeframe.TREND:
        _on_trend_bar(state, event.bar)
        return state, []
    if event.timeframe == Timeframe.DAILY:
        state.daily_atr.update(event.bar)
        return state, []

    batch = IntentBatch()
    _on_primary_bar(state, event.bar, account, batch)
    return state, batch.intents


def _on_trend_bar(state: CoreState, bar: Bar):
    state.trend.ema_fast.update(bar.close)
    state.trend.ema_slow.update(bar.close)
    state.trend.adx.update(bar)


def _reset_session(state: CoreState, bar: Bar):
    state.vwap.reset()
    state.opening_range.reset(bar.time)
    state.pending = None
    state.gate.reset(state.primary.bar_index, state.config.execution.cooldown_bars)
    state.regime = NO_REGIME


def _on_primary_bar(state: CoreState, bar: Bar, account: AccountSnapshot, batch: IntentBatch):
    primary = state.primary
    primary.bar_index += 1
    primary.atr.update(bar)
    primary.rsi.update(bar.close)
    primary.ema_fast.update(bar.close)
    prev_bar, primary.prev_bar = primary.prev_bar, bar

    session, is_new = state.sessions.update(bar.time)
    if is_new:
        _reset_session(state, bar)

    if not state.warmed_up:
        return

    verdict = state.guard.evaluate(bar.time, account)
    if verdict.flatten_reason:
        _flatten(state, bar, account, verdict.flatten_reason, batch)
    if verdict.skip:
        return

    in_session = session != SessionType.NONE
    atr = primary.atr.value
    atr_regime = atr if atr and atr > 0 else 1.0

    if in_session:
        state.vwap.update(bar)
        state.opening_range.update(bar, state.daily_atr_value(), atr)
    else:
        state.vwap.reset()

    state.regime = classify(
        or_complete=state.opening_range.is_complete,
        or_ratio=state.opening_range.ratio,
        atr=atr_regime,
        htf_adx=state.trend.adx.value,
        htf_ema_fast=state.trend.ema_fast.value,
        htf_ema_slow=state.trend.ema_slow.value,
        vwap_slope=state.vwap.slope(atr or 0.0),
        session=session,
        regime_cfg=state.config.regime,
        or_cfg=state.config.opening_range,
    )
    if state.config.debug_mode and (state.regime.is_trend or state.regime.is_chop):
        logger.debug(
            f"[Regime] {bar.time} trend={state.regime.is_trend} chop={state.regime.is_chop} "
            f"ADX={state.trend.adx.value} slope={state.regime.vwap_slope:.3f}"
        )

    ctx = SetupContext(
        bar=bar,
        prev_bar=prev_bar,
        atr=atr or 0.0,
        vwap=state.vwap.value,
        ema_fast=primary.ema_fast.value,
        htf_ema_fast=state.trend.ema_fast.value,
        htf_ema_slow=state.trend.ema_slow.value,
        rsi=primary.rsi.value,
    )

    _check_pending(state, ctx, account, batch)
    _generate_setups(state, ctx, account, in_session, batch)


def _flatten(state: CoreState, bar: Bar, account: AccountSnapshot, reason: str, batch: IntentBatch):
    if not account.is_flat:
        logger.info(f"[Engine] Flattening {account.position.value} x{account.quantity}: {reason}")
        batch.add(TradeIntent.flatten(account.position, account.quantity, reason, bar.time))
    state.pending = None


def _check_pending(state: CoreState, ctx: SetupContext, account: AccountSnapshot, batch: IntentBatch):
    pending = state.pending
    outcome = advance_pending(pending, ctx.bar, account.is_flat,
                              state.config.trend_setup.setup_expiry_bars)
    if outcome in (PendingOutcome.IDLE, PendingOutcome.WAITING):
        return

    state.pending = None
    if outcome == PendingOutcome.TRIGGERED and ctx.atr > 0:
        entry = ctx.bar.close
        stop, target = trend_brackets(pending.direction, entry, ctx.atr, state.config.risk)
        _emit_entry(state, ctx, pending.direction, SetupKind.TREND_BREAK, stop, target,
                    f"pending {pending.trigger_level:.2f} hit", batch)


def _generate_setups(state: CoreState, ctx: SetupContext, account: AccountSnapshot,
                     in_session: bool, batch: IntentBatch):
    cfg = state.config

    def can_signal() -> bool:
        is_flat = account.is_flat and not batch.has_entry
        return state.gate.can_generate(state.primary.bar_index, in_session,
                                       state.opening_range.is_complete, is_flat, cfg.execution)

    if state.regime.is_trend and state.pending is None and can_signal():
        state.pending = find_trend_setup(ctx, cfg.trend_setup, state.instrument.tick_size)

    if state.regime.is_chop and can_signal():
        direction = find_chop_entry(ctx, cfg.chop)
        if direction is not None:
            entry = ctx.bar.close
            stop, target = chop_brackets(direction, entry, ctx.atr, ctx.vwap, cfg.risk, cfg.chop)
            _emit_entry(state, ctx, direction, SetupKind.CHOP_REVERSION, stop, target,
                        f"stretched from VWAP {ctx.vwap:.2f}, RSI {ctx.rsi:.1f}", batch)


def _emit_entry(state: CoreState, ctx: SetupContext, direction: Direction, kind: SetupKind,
                stop: float, target: float, reason: str, batch: IntentBatch):
    cfg = state.config
    sizing = compute_position_size(ctx.atr, cfg.risk.stop_mult_atr, state.instrument,
                                   cfg.plan, cfg.sizing)
    tag = entry_tag(kind, direction)
    if sizing.worst_case_risk > sizing.max_risk:
        logger.info(f"[Engine] {tag} at 1-contract floor: ${sizing.worst_case_risk:.2f} "
                    f"exceeds max risk ${sizing.max_risk:.2f}")

    entry = ctx.bar.close
    batch.add(TradeIntent.enter(direction, sizing.quantity, entry, stop, target, tag, reason, ctx.bar.time))
    state.gate.record(state.primary.bar_index)
    logger.info(f"[Engine] {tag} x{sizing.quantity} at {entry:.2f} SL={stop:.2f} TP={target:.2f} ({reason})")


# ═══════════════════════════════════════════════════════════════════════════
# HOST WRAPPER
# ═══════════════════════════════════════════════════════════════════════════

class AdaptiveEngine:
    """
    Thin stateful adapter for hosts that prefer an object.

    Intents are returned from on_bar() and also pushed to the optional sink.
    """

    def __init__(self, config: Optional[EngineConfig] = None, sink: Optional[IntentSink] = None):
        self.state = initialize(config)
        self.sink = sink

    @property
    def config(self) -> EngineConfig:
        return self.state.config

    def on_bar(self, event: BarEvent, account: AccountSnapshot = FLAT_ACCOUNT) -> List[TradeIntent]:
        self.state, intents = on_bar(self.state, event, account)
        if self.sink is not None:
            for intent in intents:
                self.sink(intent)
        return intents


def create_engine(config: Optional[EngineConfig] = None, sink: Optional[IntentSink] = None):
    """Build the engine selected by config.strategy."""
    config = config or EngineConfig()
    if config.strategy == 'momentum':
        return MomentumEngine(config, sink)
    return AdaptiveEngine(config, sink)

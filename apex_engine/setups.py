"""
Setup & Pending-Order State Machine

Trend regime: a pullback-and-reversal bar arms a single pending breakout
level which later triggers, expires or is cancelled.
Chop regime: stretched-from-VWAP reversal bars enter immediately with a
target clamped toward VWAP.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import ChopConfig, ExecutionConfig, RiskConfig, TrendSetupConfig
from .models import Bar, Direction

logger = logging.getLogger(__name__)

# Optional predicate: None means the check is disabled and vacuously passes
Predicate = Callable[[Direction, 'SetupContext'], bool]


class SetupKind(Enum):
    TREND_BREAK = "TrendBreak"
    CHOP_REVERSION = "ChopReversion"


class PendingOutcome(Enum):
    IDLE = "IDLE"            # no pending setup
    WAITING = "WAITING"
    TRIGGERED = "TRIGGERED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# ═══════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PendingSetup:
    """The single armed breakout level."""
    direction: Direction
    trigger_level: float
    age: int = 0
    kind: SetupKind = SetupKind.TREND_BREAK
    created_at: Optional[datetime] = None

    def is_triggered_by(self, bar: Bar) -> bool:
        if self.direction == Direction.LONG:
            return bar.high >= self.trigger_level
        return bar.low <= self.trigger_level


@dataclass(frozen=True)
class SetupContext:
    """Committed values the setup rules read on one primary bar."""
    bar: Bar
    prev_bar: Optional[Bar]
    atr: float
    vwap: float
    ema_fast: Optional[float]
    htf_ema_fast: Optional[float]
    htf_ema_slow: Optional[float]
    rsi: Optional[float] = None

    @property
    def usable(self) -> bool:
        return self.prev_bar is not None and not math.isnan(self.vwap) and self.atr > 0


@dataclass
class SignalGate:
    """Per-session signal budget and cooldown."""
    signals_this_session: int = 0
    last_signal_bar: int = -1

    def reset(self, bar_index: int, cooldown_bars: int):
        self.signals_this_session = 0
        self.last_signal_bar = bar_index - cooldown_bars - 1

    def can_generate(self, bar_index: int, in_session: bool, or_complete: bool,
                     is_flat: bool, cfg: ExecutionConfig) -> bool:
        if not in_session or not or_complete:
            return False
        if self.signals_this_session >= cfg.max_signals_per_session:
            return False
        if bar_index - self.last_signal_bar < cfg.cooldown_bars:
            return False
        return is_flat

    def record(self, bar_index: int):
        self.signals_this_session += 1
        self.last_signal_bar = bar_index


# ═══════════════════════════════════════════════════════════════════════════
# RULES
# ═══════════════════════════════════════════════════════════════════════════

def is_reversal_bar(direction: Direction, bar: Bar, prev_bar: Optional[Bar]) -> bool:
    """Close beyond the prior bar's extreme, closing on the same side it opened toward."""
    if prev_bar is None:
        return False
    if direction == Direction.LONG:
        return bar.close > bar.open and bar.close > prev_bar.high
    return bar.close < bar.open and bar.close < prev_bar.low


def trend_bias(ctx: SetupContext) -> Optional[Direction]:
    if ctx.htf_ema_fast is None or ctx.htf_ema_slow is None:
        return None
    close = ctx.bar.close
    if ctx.htf_ema_fast > ctx.htf_ema_slow and close > ctx.vwap:
        return Direction.LONG
    if ctx.htf_ema_fast < ctx.htf_ema_slow and close < ctx.vwap:
        return Direction.SHORT
    return None


def touched_vwap_band(direction: Direction, ctx: SetupContext, pull_band_atr: float) -> bool:
    band = pull_band_atr * ctx.atr
    bar = ctx.bar
    if direction == Direction.LONG:
        return bar.low <= ctx.vwap - band and bar.close > ctx.vwap
    return bar.high >= ctx.vwap + band and bar.close < ctx.vwap


def touched_fast_ema(direction: Direction, ctx: SetupContext) -> bool:
    if ctx.ema_fast is None:
        return False
    bar = ctx.bar
    if direction == Direction.LONG:
        return bar.low <= ctx.ema_fast and bar.close > ctx.ema_fast
    return bar.high >= ctx.ema_fast and bar.close < ctx.ema_fast


def pullback_touches(cfg: TrendSetupConfig) -> List[Predicate]:
    """Enabled pullback touches; any one of them qualifies the bar."""
    touches: List[Predicate] = []
    if cfg.use_pullback_vwap:
        touches.append(lambda d, ctx: touched_vwap_band(d, ctx, cfg.pull_band_atr))
    if cfg.use_pullback_ema:
        touches.append(touched_fast_ema)
    return touches


def find_trend_setup(ctx: SetupContext, cfg: TrendSetupConfig,
                     tick_size: float) -> Optional[PendingSetup]:
    """
    Look for a trend pullback-and-reversal bar.

    Returns:
        A new PendingSetup armed at high + buffer (long) or low - buffer
        (short), or None
    """
    if not ctx.usable:
        return None

    direction = trend_bias(ctx)
    if direction is None:
        return None

    touches = pullback_touches(cfg)
    if not any(touch(direction, ctx) for touch in touches):
        return None
    if not is_reversal_bar(direction, ctx.bar, ctx.prev_bar):
        return None

    buffer = cfg.break_buffer_ticks * tick_size
    if direction == Direction.LONG:
        level = ctx.bar.high + buffer
    else:
        level = ctx.bar.low - buffer

    logger.info(f"[Setup] Pending {direction.value} armed at {level:.2f} ({ctx.bar.time})")
    return PendingSetup(direction=direction, trigger_level=level, created_at=ctx.bar.time)


def advance_pending(pending: Optional[PendingSetup], bar: Bar, is_flat: bool,
                    expiry_bars: int) -> PendingOutcome:
    """
    Age the pending setup by one bar and decide its fate.

    Order: expiry, open position, trigger. The caller clears the slot on
    any outcome other than WAITING.
    """
    if pending is None:
        return PendingOutcome.IDLE

    pending.age += 1
    if pending.age > expiry_bars:
        logger.info(f"[Setup] Pending {pending.direction.value} at {pending.trigger_level:.2f} "
                    f"expired after {pending.age} bars")
        return PendingOutcome.EXPIRED
    if not is_flat:
        logger.info(f"[Setup] Pending {pending.direction.value} cancelled: position open")
        return PendingOutcome.CANCELLED
    if pending.is_triggered_by(bar):
        logger.info(f"[Setup] Pending {pending.direction.value} triggered at {pending.trigger_level:.2f}")
        return PendingOutcome.TRIGGERED
    return PendingOutcome.WAITING


def find_chop_entry(ctx: SetupContext, cfg: ChopConfig) -> Optional[Direction]:
    """Mean-reversion entry when price is stretched from VWAP and RSI agrees."""
    if not ctx.usable or ctx.rsi is None:
        return None

    dev = cfg.dev_mult_atr * ctx.atr
    close = ctx.bar.close
    if close <= ctx.vwap - dev and ctx.rsi <= cfg.rsi_low \
            and is_reversal_bar(Direction.LONG, ctx.bar, ctx.prev_bar):
        return Direction.LONG
    if close >= ctx.vwap + dev and ctx.rsi >= cfg.rsi_high \
            and is_reversal_bar(Direction.SHORT, ctx.bar, ctx.prev_bar):
        return Direction.SHORT
    return None


# ═══════════════════════════════════════════════════════════════════════════
# BRACKETS
# ═══════════════════════════════════════════════════════════════════════════

def trend_brackets(direction: Direction, entry: float, atr: float,
                   cfg: RiskConfig) -> Tuple[float, float]:
    """(stop, target) from ATR multiples."""
    sign = direction.sign
    return entry - sign * cfg.stop_mult_atr * atr, entry + sign * cfg.tp_mult_atr * atr


def chop_brackets(direction: Direction, entry: float, atr: float, vwap: float,
                  risk_cfg: RiskConfig, chop_cfg: ChopConfig) -> Tuple[float, float]:
    """(stop, target); the target is pulled in to VWAP when VWAP is closer."""
    sign = direction.sign
    stop = entry - sign * risk_cfg.stop_mult_atr * atr
    target = entry + sign * chop_cfg.chop_tp_atr * atr
    if not math.isnan(vwap):
        if direction == Direction.LONG and vwap > entry:
            target = min(target, vwap)
        elif direction == Direction.SHORT and vwap < entry:
            target = max(target, vwap)
    return stop, target


def entry_tag(kind: SetupKind, direction: Direction) -> str:
    prefix = "Trend" if kind == SetupKind.TREND_BREAK else "Chop"
    return f"{prefix}{'Long' if direction == Direction.LONG else 'Short'}"

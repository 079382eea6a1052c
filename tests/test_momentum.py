"""
Tests for the momentum strategy and its liquidity-zone filter
"""

import math
from datetime import datetime, timedelta

import pytest
from apex_engine.config import EngineConfig, MomentumConfig
from apex_engine.models import (
    AccountSnapshot, Bar, BarEvent, ClosedTrade, Direction, FLAT_ACCOUNT,
    IntentAction, PositionSide, Timeframe,
)
from apex_engine.momentum import (
    LiquidityZones, MomentumEngine, initialize_momentum, on_bar_momentum,
    optional_checks, trend_direction,
)
from apex_engine.sizing import compute_position_size

T0 = datetime(2024, 3, 4, 10, 0)


def momentum_config(**overrides):
    momentum = {
        'bars_required': 10,
        'atr_period': 3,
        'adx_period': 3,
        'fast_ema_period': 3,
        'slow_ema_period': 6,
        'volume_ma_period': 5,
        'rth_only': False,
        'require_wt_confirmation': False,
        'require_volatility_expansion': False,
        'require_volume_confirmation': False,
        'use_liquidity_zone_filter': False,
    }
    momentum.update(overrides)
    return EngineConfig.from_dict({
        'strategy': 'momentum',
        'momentum': momentum,
        'guards': {'daily_loss_cap': 600.0},
    })


def rising_bars(count, start=T0):
    bars = []
    for i in range(count):
        base = 100.0 + i * 2.0
        bars.append(Bar(start + timedelta(minutes=i), base, base + 1.0, base - 0.5, base + 0.8, 1000.0))
    return bars


def constant_bars(count, start=T0, price=100.0):
    return [Bar(start + timedelta(minutes=i), price, price, price, price, 1000.0) for i in range(count)]


def feed(engine, bars, account=FLAT_ACCOUNT):
    intents = []
    for bar in bars:
        intents.extend(engine.on_bar(BarEvent(Timeframe.PRIMARY, bar), account))
    return intents


class TestConstantPrice:

    def test_no_entries_and_no_expansion(self):
        engine = MomentumEngine(momentum_config(require_volatility_expansion=True))
        intents = feed(engine, constant_bars(20))

        assert intents == []
        assert not engine.state.bollinger.is_expanding()
        assert engine.state.atr.value == 0.0
        assert trend_direction(constant_bars(1)[0], engine.state.ema_fast.value,
                               engine.state.ema_slow.value) is None


class TestEntries:

    def test_long_entry_in_strong_uptrend(self):
        engine = MomentumEngine(momentum_config())
        intents = feed(engine, rising_bars(11))

        assert len(intents) == 1
        entry = intents[0]
        assert entry.action == IntentAction.ENTER
        assert entry.side == Direction.LONG
        assert entry.tag == "Long_Entry"
        assert entry.reason.startswith("EMA trend, ADX")
        assert entry.bar_time == T0 + timedelta(minutes=10)

        state = engine.state
        sizing = compute_position_size(state.atr.value, 2.5, state.instrument,
                                       state.config.plan, state.config.sizing)
        tick = state.instrument.tick_size
        assert entry.quantity == sizing.quantity
        assert entry.stop_price == pytest.approx(entry.entry_price - sizing.stop_ticks * tick)
        target_ticks = math.ceil(sizing.stop_ticks * 2.0)
        assert entry.target_price == pytest.approx(entry.entry_price + target_ticks * tick)

    def test_no_entry_before_bars_required(self):
        engine = MomentumEngine(momentum_config())
        assert feed(engine, rising_bars(10)) == []

    def test_no_entry_while_in_position(self):
        engine = MomentumEngine(momentum_config())
        long_account = AccountSnapshot(position=PositionSide.LONG, quantity=1)
        assert feed(engine, rising_bars(15), long_account) == []

    def test_short_entry_in_downtrend(self):
        engine = MomentumEngine(momentum_config())
        bars = []
        for i in range(11):
            base = 200.0 - i * 2.0
            bars.append(Bar(T0 + timedelta(minutes=i), base, base + 0.5, base - 1.0, base - 0.8, 1000.0))

        intents = feed(engine, bars)
        assert len(intents) == 1
        assert intents[0].tag == "Short_Entry"
        assert intents[0].stop_price > intents[0].entry_price > intents[0].target_price

    def test_rth_filter(self):
        early = T0.replace(hour=6)
        engine = MomentumEngine(momentum_config(rth_only=True))
        assert feed(engine, rising_bars(15, start=early)) == []

        engine = MomentumEngine(momentum_config(rth_only=False))
        assert feed(engine, rising_bars(15, start=early)) != []

    def test_non_primary_events_ignored(self):
        state = initialize_momentum(momentum_config())
        state, intents = on_bar_momentum(state, BarEvent(Timeframe.TREND, rising_bars(1)[0]))
        assert intents == []
        assert state.bar_index == -1


class TestCloseOut:

    def test_flat_before_close(self):
        engine = MomentumEngine(momentum_config())
        feed(engine, constant_bars(12, start=datetime(2024, 3, 4, 15, 40)))
        long_account = AccountSnapshot(position=PositionSide.LONG, quantity=2)

        assert feed(engine, [Bar(datetime(2024, 3, 4, 15, 56), 100, 100, 100, 100)], long_account) == []

        intents = feed(engine, [Bar(datetime(2024, 3, 4, 15, 57), 100, 100, 100, 100)], long_account)
        assert len(intents) == 1
        assert intents[0].action == IntentAction.FLATTEN
        assert intents[0].reason == "FlatBeforeClose"
        assert intents[0].quantity == 2

    def test_loss_cap_flattens(self):
        engine = MomentumEngine(momentum_config())
        feed(engine, constant_bars(12))
        t = T0 + timedelta(minutes=12)
        account = AccountSnapshot(position=PositionSide.SHORT, quantity=1,
                                  closed_trades=(ClosedTrade(t, -650.0),))

        intents = feed(engine, [Bar(t, 100, 100, 100, 100)], account)
        assert [i.reason for i in intents] == ["DailyLossCap"]
        assert intents[0].side == Direction.SHORT

        # Sticky for the rest of the day
        flat = AccountSnapshot(closed_trades=account.closed_trades)
        assert feed(engine, rising_bars(10, start=t + timedelta(minutes=1)), flat) == []

    def test_guard_has_no_flatten_window(self):
        state = initialize_momentum(momentum_config())
        assert state.guard.config.flatten_minutes == 0
        assert state.guard.config.daily_loss_cap == 600.0


class TestOptionalChecks:

    def test_all_enabled(self):
        assert len(optional_checks(MomentumConfig())) == 4

    def test_all_disabled(self):
        cfg = MomentumConfig(require_wt_confirmation=False, require_volatility_expansion=False,
                             require_volume_confirmation=False, use_liquidity_zone_filter=False)
        assert optional_checks(cfg) == []

    def test_volume_confirmation_blocks_thin_bars(self):
        engine = MomentumEngine(momentum_config(require_volume_confirmation=True,
                                                min_volume_multiplier=2.0))
        assert feed(engine, rising_bars(15)) == []


class TestLiquidityZones:

    def recent(self, width=2.0):
        return [Bar(T0 + timedelta(minutes=i), 100, 100 + width, 100, 101, 100.0) for i in range(5)]

    def test_high_volume_narrow_bar_adds_zone(self):
        zones = LiquidityZones()
        bar = Bar(T0 + timedelta(minutes=5), 100, 101, 100, 100.5, 300.0)
        assert zones.update(bar, self.recent(), volume_sma=100.0, atr=2.0) == 100.5
        assert len(zones) == 1

    def test_rejects_low_volume_and_wide_range(self):
        zones = LiquidityZones()
        thin = Bar(T0, 100, 101, 100, 100.5, 120.0)
        wide = Bar(T0, 100, 102, 100, 101, 300.0)
        assert zones.update(thin, self.recent(), 100.0, 2.0) is None
        assert zones.update(wide, self.recent(), 100.0, 2.0) is None
        assert len(zones) == 0

    def test_needs_five_prior_bars(self):
        zones = LiquidityZones()
        bar = Bar(T0, 100, 101, 100, 100.5, 300.0)
        assert zones.update(bar, self.recent()[:4], 100.0, 2.0) is None

    def test_min_separation(self):
        zones = LiquidityZones()
        first = Bar(T0, 100, 101, 100, 100.5, 300.0)
        close_by = Bar(T0, 100.5, 101.5, 100.5, 101, 300.0)
        zones.update(first, self.recent(), 100.0, 4.0)
        assert zones.update(close_by, self.recent(), 100.0, 4.0) is None
        assert len(zones) == 1

    def test_keeps_latest_twenty(self):
        zones = LiquidityZones()
        for i in range(25):
            low = 100.0 + i * 10
            zones.update(Bar(T0, low, low + 1, low, low, 300.0), self.recent(), 100.0, 2.0)
        assert len(zones) == 20
        assert zones.zones[0] == pytest.approx(150.5)

    def test_is_near(self):
        zones = LiquidityZones()
        assert zones.is_near(500.0, 2.0)

        zones.update(Bar(T0, 100, 101, 100, 100.5, 300.0), self.recent(), 100.0, 2.0)
        assert zones.is_near(102.0, 2.0)
        assert not zones.is_near(103.0, 2.0)

    def test_clear(self):
        zones = LiquidityZones()
        zones.update(Bar(T0, 100, 101, 100, 100.5, 300.0), self.recent(), 100.0, 2.0)
        zones.clear()
        assert len(zones) == 0

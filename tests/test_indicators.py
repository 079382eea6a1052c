"""
Tests for Indicator System

Tests streaming indicator calculations, warm-up behavior and DataFrame replay.
"""

from datetime import datetime, timedelta

import pytest
import pandas as pd
import numpy as np
from apex_engine.indicators import (
    SMA, EMA, StdDev, ATR, RSI, ADX, WaveTrend, BollingerBandsModified,
    safe_div, validate_period,
)
from apex_engine.models import Bar


# Sample data fixture
@pytest.fixture
def sample_data():
    """Create sample OHLCV data for testing"""
    np.random.seed(42)
    n = 100

    # Generate realistic price data
    close = np.cumsum(np.random.randn(n) * 2.0) + 15000
    high = close + np.abs(np.random.randn(n) * 1.5)
    low = close - np.abs(np.random.randn(n) * 1.5)
    open_price = np.clip(close + np.random.randn(n) * 0.5, low, high)

    start = datetime(2024, 3, 4, 9, 30)
    return pd.DataFrame({
        'time': [start + timedelta(minutes=i) for i in range(n)],
        'open': open_price,
        'high': high,
        'low': low,
        'close': close,
        'volume': np.random.randint(1000, 10000, n).astype(float)
    })


def to_bars(df):
    return [
        Bar(time=row.time.to_pydatetime(), open=row.open, high=row.high,
            low=row.low, close=row.close, volume=row.volume)
        for row in df.itertuples()
    ]


def flat_bars(n, price=100.0):
    start = datetime(2024, 3, 4, 9, 30)
    return [Bar(start + timedelta(minutes=i), price, price, price, price, 1000.0) for i in range(n)]


class TestHelpers:
    """Test shared validation helpers"""

    def test_validate_period(self):
        assert validate_period(14) == 14
        with pytest.raises(ValueError):
            validate_period(0)
        with pytest.raises(ValueError):
            validate_period(2.5)
        with pytest.raises(ValueError):
            validate_period(True)

    def test_safe_div(self):
        assert safe_div(10.0, 2.0) == 5.0
        assert safe_div(10.0, 0.0) == 0.0
        assert safe_div(10.0, float('nan')) == 0.0
        assert safe_div(10.0, None) == 0.0


class TestSMA:
    """Test Simple Moving Average"""

    def test_sma_calculation(self, sample_data):
        """Test SMA calculates correctly"""
        sma = SMA(period=20)
        result = sma.calculate(sample_data)

        assert 'time' in result.columns
        assert 'value' in result.columns
        assert len(result) == len(sample_data)
        expected = sample_data['close'].rolling(20).mean()
        np.testing.assert_allclose(result['value'].values[19:], expected.values[19:])

    def test_sma_not_ready_before_window(self, sample_data):
        result = SMA(period=20).calculate(sample_data)
        assert result['value'].iloc[:19].isna().all()
        assert not np.isnan(result['value'].iloc[19])

    def test_sma_period_validation(self):
        """Test SMA period validation"""
        with pytest.raises(ValueError):
            SMA(period=0)


class TestEMA:
    """Test Exponential Moving Average"""

    def test_ema_not_ready_before_period(self):
        ema = EMA(period=5)
        values = [ema.update(float(x)) for x in range(1, 6)]
        assert values[:4] == [None] * 4
        assert values[4] is not None

    def test_ema_recurrence(self):
        ema = EMA(period=3)
        for x in (10.0, 12.0, 14.0):
            ema.update(x)
        # alpha = 0.5, seeded with the first sample
        assert ema.value == pytest.approx(((10.0 * 0.5 + 12.0 * 0.5) * 0.5) + 14.0 * 0.5)

    def test_ema_different_from_sma(self, sample_data):
        """Test EMA differs from SMA (more recent weight)"""
        sma_result = SMA(period=20).calculate(sample_data)
        ema_result = EMA(period=20).calculate(sample_data)

        assert not np.array_equal(
            sma_result['value'].values[-10:],
            ema_result['value'].values[-10:]
        )


class TestStdDev:

    def test_population_stdev(self, sample_data):
        result = StdDev(period=20).calculate(sample_data)
        expected = sample_data['close'].rolling(20).std(ddof=0)
        np.testing.assert_allclose(result['value'].values[19:], expected.values[19:])


class TestATR:
    """Test Wilder Average True Range"""

    def test_atr_seed_is_mean_of_true_ranges(self, sample_data):
        bars = to_bars(sample_data)
        atr = ATR(period=14)
        trs = []
        for bar in bars[:14]:
            atr.update(bar)
            trs.append(atr.last_true_range)
        assert atr.value == pytest.approx(sum(trs) / 14)

    def test_atr_not_ready_before_period(self, sample_data):
        result = ATR(period=14).calculate(sample_data)
        assert result['value'].iloc[:13].isna().all()
        assert (result['value'].iloc[13:] > 0).all()

    def test_atr_constant_price(self):
        atr = ATR(period=14)
        for bar in flat_bars(20):
            atr.update(bar)
        assert atr.value == 0.0


class TestRSI:
    """Test Relative Strength Index"""

    def test_rsi_range(self, sample_data):
        """Test RSI stays within 0-100 range"""
        result = RSI(period=14).calculate(sample_data)

        values = result['value'].dropna()
        assert values.min() >= 0
        assert values.max() <= 100

    def test_rsi_needs_period_plus_one_closes(self):
        rsi = RSI(period=14)
        values = [rsi.update(100.0 + i) for i in range(15)]
        assert all(v is None for v in values[:14])
        assert values[14] == 100.0

    def test_rsi_flat_series_is_neutral(self):
        rsi = RSI(period=5)
        for _ in range(10):
            rsi.update(100.0)
        assert rsi.value == 50.0


class TestADX:
    """Test Wilder ADX"""

    def test_adx_ready_after_two_periods(self, sample_data):
        bars = to_bars(sample_data)
        adx = ADX(period=14)
        for i, bar in enumerate(bars[:28]):
            adx.update(bar)
            if i < 27:
                assert adx.value is None
        assert adx.value is not None

    def test_adx_strong_uptrend(self):
        start = datetime(2024, 3, 4, 9, 30)
        adx = ADX(period=5)
        for i in range(30):
            base = 100.0 + i * 2.0
            adx.update(Bar(start + timedelta(minutes=i), base, base + 1.0, base - 0.5, base + 0.8))
        assert adx.value > 50.0
        assert adx.plus_di > adx.minus_di

    def test_adx_outputs(self, sample_data):
        result = ADX(period=14).calculate(sample_data)
        assert {'adx', 'plus_di', 'minus_di'} <= set(result.columns)
        assert result['adx'].dropna().between(0, 100).all()

    def recurrence_bars(self):
        start = datetime(2024, 3, 4, 9, 30)
        rows = [(10, 8, 9), (12, 9, 11), (13, 10, 12), (12, 9, 10)]
        return [Bar(start + timedelta(minutes=i), c, h, l, c) for i, (h, l, c) in enumerate(rows)]

    def test_running_sum_dx_smoothing(self):
        adx = ADX(period=2, dx_smoothing='running_sum')
        values = [adx.update(bar) for bar in self.recurrence_bars()]
        assert values[:2] == [None, None]
        assert values[2] == pytest.approx(100.0)
        assert adx.dx == pytest.approx(20.0)
        # sm - sm / period + dx
        assert values[3] == pytest.approx(100.0 - 50.0 + 20.0)

    def test_average_dx_smoothing(self):
        adx = ADX(period=2)
        values = [adx.update(bar) for bar in self.recurrence_bars()]
        assert values[2] is None
        assert values[3] == pytest.approx(60.0)

    def test_dx_smoothing_validation(self):
        with pytest.raises(ValueError, match='dx_smoothing'):
            ADX(period=14, dx_smoothing='ema')


class TestReplayIdempotence:
    """Recomputing from scratch matches incremental updates bar by bar"""

    @pytest.mark.parametrize('indicator', [
        ATR(period=14),
        ADX(period=14),
        ADX(period=14, dx_smoothing='running_sum'),
        WaveTrend(),
    ], ids=['atr', 'adx', 'adx-running-sum', 'wavetrend'])
    def test_bar_indicators(self, sample_data, indicator):
        incremental = []
        for bar in to_bars(sample_data):
            indicator.update(bar)
            incremental.append(indicator.value)

        replayed = indicator.calculate(sample_data)
        column = replayed.columns[1]
        expected = np.array([np.nan if v is None else v for v in incremental])
        np.testing.assert_array_equal(replayed[column].values, expected)

    def test_rsi(self, sample_data):
        rsi = RSI(period=14)
        incremental = [rsi.update(c) for c in sample_data['close']]
        replayed = rsi.calculate(sample_data)
        expected = np.array([np.nan if v is None else v for v in incremental])
        np.testing.assert_array_equal(replayed['value'].values, expected)

    def test_reset_restarts_recurrence(self, sample_data):
        bars = to_bars(sample_data)
        atr = ATR(period=14)
        for bar in bars:
            atr.update(bar)
        first = atr.value
        atr.reset()
        assert atr.value is None
        for bar in bars:
            atr.update(bar)
        assert atr.value == first


class TestWaveTrend:
    """Test WaveTrend oscillator"""

    def test_not_ready_before_average_length(self, sample_data):
        result = WaveTrend(average_length=21).calculate(sample_data)
        assert result['wt1'].iloc[:20].isna().all()
        assert not np.isnan(result['wt1'].iloc[20])

    def test_flat_price_has_zero_channel_index(self):
        wt = WaveTrend(channel_length=3, average_length=5, signal_length=2)
        for bar in flat_bars(10):
            wt.update(bar)
        assert wt.wt1 == 0.0
        assert wt.wt2 == 0.0
        assert not wt.is_bullish()
        assert not wt.is_bearish()

    def test_bullish_cross_after_selloff(self):
        start = datetime(2024, 3, 4, 9, 30)
        wt = WaveTrend(channel_length=3, average_length=3, signal_length=3)
        prices = [100.0 - i for i in range(15)] + [86.0 + 3 * i for i in range(6)]
        bullish = []
        for i, p in enumerate(prices):
            wt.update(Bar(start + timedelta(minutes=i), p, p + 0.5, p - 0.5, p))
            bullish.append(wt.is_bullish())
        assert any(bullish[15:])

    def test_extreme_levels(self):
        start = datetime(2024, 3, 4, 9, 30)
        falling = WaveTrend(channel_length=3, average_length=3, signal_length=3)
        rising = WaveTrend(channel_length=3, average_length=3, signal_length=3)
        assert not falling.is_oversold()
        for i in range(40):
            down, up = 200.0 - i, 100.0 + i
            falling.update(Bar(start + timedelta(minutes=i), down, down + 0.5, down - 0.5, down))
            rising.update(Bar(start + timedelta(minutes=i), up, up + 0.5, up - 0.5, up))

        assert falling.wt1 == pytest.approx(-100.0 / 1.5, rel=1e-3)
        assert falling.is_oversold() and not falling.is_overbought()
        assert rising.is_overbought() and not rising.is_oversold()

        flat = WaveTrend(channel_length=3, average_length=5, signal_length=2)
        for bar in flat_bars(10):
            flat.update(bar)
        assert not flat.is_overbought()
        assert not flat.is_oversold()

    def test_level_validation(self):
        with pytest.raises(ValueError):
            WaveTrend(overbought=20)
        with pytest.raises(ValueError):
            WaveTrend(oversold=10)


class TestBollingerBandsModified:
    """Test Modified Bollinger Bands"""

    def test_band_ordering(self, sample_data):
        result = BollingerBandsModified(period=20).calculate(sample_data).dropna()

        assert (result['expansion_upper'] >= result['upper']).all()
        assert (result['upper'] >= result['middle']).all()
        assert (result['middle'] >= result['lower']).all()
        assert (result['lower'] >= result['expansion_lower']).all()

    def test_constant_price_never_expands(self):
        bb = BollingerBandsModified(period=5)
        for _ in range(20):
            bb.update(100.0)
            assert not bb.is_expanding()
        assert bb.bandwidth == 0.0
        assert bb.is_in_squeeze()

    def test_expansion_needs_local_minimum(self):
        bb = BollingerBandsModified(period=3)
        # Bandwidths: wide, narrow, wider -> expanding off a local minimum
        for price in (100.0, 104.0, 100.0, 100.0, 100.0, 110.0):
            bb.update(price)
        assert bb.is_expanding()

    def test_steadily_rising_bandwidth_is_not_expansion(self):
        bb = BollingerBandsModified(period=3)
        for price in (100.0, 100.0, 100.0, 101.0, 103.0, 107.0):
            bb.update(price)
        assert not bb.is_expanding()

    def test_breakouts(self, sample_data):
        bb = BollingerBandsModified(period=20)
        for c in sample_data['close']:
            bb.update(c)
        assert bb.is_breakout_above(bb.upper + 1.0)
        assert bb.is_breakout_below(bb.lower - 1.0)
        assert not bb.is_breakout_above(bb.middle)

    def test_multiplier_validation(self):
        with pytest.raises(ValueError):
            BollingerBandsModified(std_dev_multiplier=0.0)
        with pytest.raises(ValueError):
            BollingerBandsModified(squeeze_threshold=2.0)

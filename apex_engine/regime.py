"""
Trend / Chop Regime Classifier

Trend and chop are evaluated independently and kept as two booleans.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import OpeningRangeConfig, RegimeConfig
from .sessions import SessionType

logger = logging.getLogger(__name__)

CHOP_SLOPE_FACTOR = 0.80


@dataclass(frozen=True)
class RegimeDecision:
    is_trend: bool = False
    is_chop: bool = False
    trend_strength: bool = False
    vwap_slope: float = 0.0


NO_REGIME = RegimeDecision()


def classify(
    or_complete: bool,
    or_ratio: float,
    atr: float,
    htf_adx: Optional[float],
    htf_ema_fast: Optional[float],
    htf_ema_slow: Optional[float],
    vwap_slope: float,
    session: SessionType,
    regime_cfg: RegimeConfig,
    or_cfg: OpeningRangeConfig,
) -> RegimeDecision:
    """
    Classify the current bar.

    Args:
        or_complete: Opening range frozen for this session
        or_ratio: Opening range / daily ATR
        atr: Intraday ATR (already substituted with 1 when unusable)
        htf_adx: Trend-timeframe ADX, None while not ready
        htf_ema_fast: Trend-timeframe fast EMA
        htf_ema_slow: Trend-timeframe slow EMA
        vwap_slope: VWAP slope in ATR units
        session: Current session
    """
    if not or_complete:
        return RegimeDecision(vwap_slope=vwap_slope)

    adx_ok = htf_adx is not None and htf_adx >= regime_cfg.adx_min_trend
    spread_ok = False
    if htf_ema_fast is not None and htf_ema_slow is not None and atr > 0:
        spread_ok = abs(htf_ema_fast - htf_ema_slow) / atr >= regime_cfg.ema_spread_min
    slope_ok = abs(vwap_slope) >= regime_cfg.vwap_slope_min
    trend_strength = adx_ok or spread_ok or slope_ok

    is_trend = or_ratio >= or_cfg.or_atr_frac_trend and trend_strength
    is_chop = (
        not trend_strength
        and abs(vwap_slope) < regime_cfg.vwap_slope_min * CHOP_SLOPE_FACTOR
        and (session != SessionType.NY or regime_cfg.allow_chop_in_ny)
    )

    return RegimeDecision(
        is_trend=is_trend,
        is_chop=is_chop,
        trend_strength=trend_strength,
        vwap_slope=vwap_slope,
    )

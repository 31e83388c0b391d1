from __future__ import annotations

from typing import Optional, Sequence

from .constants import RSI_OVERBOUGHT, RSI_OVERSOLD, RSI_PERIOD, RSI_SLOPE_LOOKBACK
from .models import NearFlag, RSIResult, RSISettings, RSIState, Series
from .series import round2, value_at, wilder_smooth

DEFAULT_RSI_SETTINGS = RSISettings()


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    if avg_gain == 0:
        return 0.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def calculate_rsi_series(closes: Sequence[float], period: int = RSI_PERIOD) -> Series:
    """RSI per candle using Wilder's smoothing, seeded with the plain mean of the first deltas."""
    out: Series = [None] * len(closes)
    if period <= 0 or len(closes) < period + 1:
        return out

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change
    avg_gain = gains / period
    avg_loss = losses / period
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        change = closes[i] - closes[i - 1]
        avg_gain = wilder_smooth(avg_gain, max(change, 0.0), period)
        avg_loss = wilder_smooth(avg_loss, max(-change, 0.0), period)
        out[i] = _rsi_value(avg_gain, avg_loss)
    return out


def rsi_state(value: float, settings: RSISettings = DEFAULT_RSI_SETTINGS) -> RSIState:
    if value > settings.overbought:
        return RSIState.OVERBOUGHT
    if value < settings.oversold:
        return RSIState.OVERSOLD
    return RSIState.NEUTRAL


def near_flag(value: float, settings: RSISettings = DEFAULT_RSI_SETTINGS) -> NearFlag:
    if rsi_state(value, settings) != RSIState.NEUTRAL:
        return NearFlag.NONE
    if settings.near_overbought_from <= value < settings.overbought:
        return NearFlag.NEAR_OVERBOUGHT
    if settings.oversold < value <= settings.near_oversold_to:
        return NearFlag.NEAR_OVERSOLD
    return NearFlag.NONE


def analyze_rsi(series: Series, settings: RSISettings = DEFAULT_RSI_SETTINGS) -> RSIResult:
    last = len(series) - 1
    current = value_at(series, last)
    if current is None:
        return RSIResult(
            value=None,
            slope_5=None,
            state=RSIState.NEUTRAL,
            near_flag=NearFlag.NONE,
            distance_to_30=None,
            distance_to_70=None,
        )

    slope: Optional[float] = None
    previous = value_at(series, last - RSI_SLOPE_LOOKBACK)
    if previous is not None:
        slope = (current - previous) / RSI_SLOPE_LOOKBACK

    # Distances are measured against the fixed 30/70 levels, not the user's thresholds.
    return RSIResult(
        value=round2(current),
        slope_5=round2(slope),
        state=rsi_state(current, settings),
        near_flag=near_flag(current, settings),
        distance_to_30=round2(current - RSI_OVERSOLD),
        distance_to_70=round2(current - RSI_OVERBOUGHT),
    )

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .constants import EMA_TREND_PERIOD, MACD_FAST, MACD_SIGNAL, MACD_SLOW
from .models import EMAMACDAnalysis, MACDCross, MACDResult, Series, TrendMomentumState
from .series import ema, round2, value_at

SELL_REASON_MACD = "macd_cross_down"
SELL_REASON_EMA_BREAK = "ema_break"


def calculate_macd(
    closes: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal_period: int = MACD_SIGNAL,
) -> MACDResult:
    ema_fast = ema(closes, fast)
    ema_slow = ema(closes, slow)

    macd: Series = [None] * len(closes)
    for i in range(len(closes)):
        f = ema_fast[i]
        s = ema_slow[i]
        if f is not None and s is not None:
            macd[i] = f - s

    # Signal runs over the defined MACD values only, then maps back onto candle indices.
    valid: List[float] = [v for v in macd if v is not None]
    signal_valid = ema(valid, signal_period)

    signal: Series = [None] * len(closes)
    histogram: Series = [None] * len(closes)
    k = 0
    for i in range(len(closes)):
        m = macd[i]
        if m is None:
            continue
        sig = signal_valid[k]
        if sig is not None:
            signal[i] = sig
            histogram[i] = m - sig
        k += 1

    return MACDResult(macd=macd, signal=signal, histogram=histogram)


def detect_macd_cross(histogram: Series, index: int) -> MACDCross:
    current = value_at(histogram, index)
    previous = value_at(histogram, index - 1)
    if current is None or previous is None:
        return MACDCross.NONE
    if current > 0 and previous <= 0:
        return MACDCross.CROSS_UP
    if current < 0 and previous >= 0:
        return MACDCross.CROSS_DOWN
    return MACDCross.NONE


def resolve_trend_state(
    close: float,
    ema_value: float,
    prev_close: Optional[float],
    prev_ema: Optional[float],
    cross: MACDCross,
) -> Tuple[TrendMomentumState, Optional[str]]:
    """Combine the EMA trend filter with the MACD cross.

    A MACD cross-down and a fresh close below the EMA are checked
    independently; either one makes the state SELL. Outside the uptrend any
    non-SELL state collapses to BEAR.
    """
    is_trend_bull = close >= ema_value

    state = TrendMomentumState.BULL_NO_SIGNAL if is_trend_bull else TrendMomentumState.BEAR
    if is_trend_bull and cross == MACDCross.CROSS_UP:
        state = TrendMomentumState.BUY

    broke_below = (
        close < ema_value
        and prev_close is not None
        and prev_ema is not None
        and prev_close >= prev_ema
    )

    sell_reason: Optional[str] = None
    if cross == MACDCross.CROSS_DOWN:
        sell_reason = SELL_REASON_MACD
    elif broke_below:
        sell_reason = SELL_REASON_EMA_BREAK
    if sell_reason:
        state = TrendMomentumState.SELL

    if not is_trend_bull and state != TrendMomentumState.SELL:
        state = TrendMomentumState.BEAR
    return state, sell_reason


def analyze_ema_macd(
    closes: Sequence[float],
    ema_period: int = EMA_TREND_PERIOD,
    macd_fast: int = MACD_FAST,
    macd_slow: int = MACD_SLOW,
    macd_signal: int = MACD_SIGNAL,
) -> EMAMACDAnalysis:
    emas = ema(closes, ema_period)
    macd = calculate_macd(closes, macd_fast, macd_slow, macd_signal)

    i = len(closes) - 1
    current_ema = value_at(emas, i)
    current_macd = value_at(macd.macd, i)
    current_signal = value_at(macd.signal, i)
    current_hist = value_at(macd.histogram, i)

    if current_ema is None or current_macd is None or current_signal is None or current_hist is None:
        return EMAMACDAnalysis(
            ema200=round2(current_ema),
            distance_to_ema200_pct=None,
            macd=round2(current_macd),
            macd_signal=round2(current_signal),
            macd_hist=round2(current_hist),
            macd_cross=MACDCross.NONE,
            state=TrendMomentumState.BEAR,
        )

    close = closes[i]
    distance_pct: Optional[float] = None
    if current_ema != 0:
        distance_pct = (close - current_ema) / current_ema * 100.0

    cross = detect_macd_cross(macd.histogram, i)
    prev_close = closes[i - 1] if i > 0 else None
    state, sell_reason = resolve_trend_state(close, current_ema, prev_close, value_at(emas, i - 1), cross)

    return EMAMACDAnalysis(
        ema200=round2(current_ema),
        distance_to_ema200_pct=round2(distance_pct),
        macd=round2(current_macd),
        macd_signal=round2(current_signal),
        macd_hist=round2(current_hist),
        macd_cross=cross,
        state=state,
        sell_reason=sell_reason,
    )

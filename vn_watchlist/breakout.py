from __future__ import annotations

from typing import List, Optional, Sequence

from .constants import ADX_PERIOD, BB_PERIOD, BB_STD_MULT, VOLUME_MA_PERIOD
from .models import ADXResult, BBBreakoutAnalysis, BollingerBands, BreakoutParams, BreakoutState, Series
from .series import rolling_stddev, round2, sma, value_at, wilder_smooth

DEFAULT_BREAKOUT_PARAMS = BreakoutParams()


def calculate_bollinger(closes: Sequence[float], period: int = BB_PERIOD, mult: float = BB_STD_MULT) -> BollingerBands:
    mid = sma(closes, period)
    std = rolling_stddev(closes, period, mid)

    upper: Series = [None] * len(closes)
    lower: Series = [None] * len(closes)
    for i in range(len(closes)):
        m = mid[i]
        s = std[i]
        if m is not None and s is not None:
            upper[i] = m + mult * s
            lower[i] = m - mult * s
    return BollingerBands(mid=mid, upper=upper, lower=lower)


def calculate_adx(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ADX_PERIOD,
) -> ADXResult:
    """Wilder ADX with +DI/-DI. Needs at least 2 * period candles."""
    n = len(closes)
    adx: Series = [None] * n
    plus_di: Series = [None] * n
    minus_di: Series = [None] * n
    if period <= 0 or n < period * 2:
        return ADXResult(adx=adx, plus_di=plus_di, minus_di=minus_di)

    tr: List[float] = [0.0] * n
    plus_dm: List[float] = [0.0] * n
    minus_dm: List[float] = [0.0] * n
    for i in range(1, n):
        h = highs[i]
        l = lows[i]
        pc = closes[i - 1]
        tr[i] = max(h - l, abs(h - pc), abs(l - pc))

        up_move = h - highs[i - 1]
        down_move = lows[i - 1] - l
        plus_dm[i] = up_move if up_move > down_move and up_move > 0 else 0.0
        minus_dm[i] = down_move if down_move > up_move and down_move > 0 else 0.0

    # Running sums, not averages: s[i] = s[i-1] - s[i-1]/period + x[i].
    tr_s: List[float] = [0.0] * n
    plus_s: List[float] = [0.0] * n
    minus_s: List[float] = [0.0] * n
    tr_s[period] = sum(tr[1 : period + 1])
    plus_s[period] = sum(plus_dm[1 : period + 1])
    minus_s[period] = sum(minus_dm[1 : period + 1])
    for i in range(period + 1, n):
        tr_s[i] = tr_s[i - 1] - tr_s[i - 1] / period + tr[i]
        plus_s[i] = plus_s[i - 1] - plus_s[i - 1] / period + plus_dm[i]
        minus_s[i] = minus_s[i - 1] - minus_s[i - 1] / period + minus_dm[i]

    dx: List[float] = [0.0] * n
    for i in range(period, n):
        if tr_s[i] == 0:
            p, m = 0.0, 0.0
        else:
            p = 100.0 * plus_s[i] / tr_s[i]
            m = 100.0 * minus_s[i] / tr_s[i]
        plus_di[i] = p
        minus_di[i] = m
        total = p + m
        dx[i] = 0.0 if total == 0 else 100.0 * abs(p - m) / total

    seed_idx = period * 2 - 1
    current = sum(dx[period : period * 2]) / period
    adx[seed_idx] = current
    for i in range(period * 2, n):
        current = wilder_smooth(current, dx[i], period)
        adx[i] = current

    return ADXResult(adx=adx, plus_di=plus_di, minus_di=minus_di)


def classify_breakout(
    close: float,
    upper: float,
    mid: float,
    vol_ratio: float,
    adx: float,
    prev_adx: Optional[float],
    params: BreakoutParams = DEFAULT_BREAKOUT_PARAMS,
) -> BreakoutState:
    if close > upper:
        vol_confirm = vol_ratio >= params.vol_ratio_min
        adx_rising = adx > prev_adx if prev_adx is not None else True
        adx_confirm = adx >= params.adx_min and (not params.require_adx_rising or adx_rising)
        if vol_confirm and adx_confirm:
            return BreakoutState.BREAKOUT_BUY
        return BreakoutState.BREAKOUT_WEAK
    # Fires on any close under the midline, whether or not a breakout happened first.
    if close < mid:
        return BreakoutState.BREAKOUT_EXIT
    return BreakoutState.NEUTRAL


def analyze_bb_breakout(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Sequence[float],
    params: BreakoutParams = DEFAULT_BREAKOUT_PARAMS,
) -> BBBreakoutAnalysis:
    bands = calculate_bollinger(closes, params.bb_period, params.bb_std_mult)
    adx = calculate_adx(highs, lows, closes, ADX_PERIOD)
    vol_ma = sma(volumes, VOLUME_MA_PERIOD)

    i = len(closes) - 1
    mid = value_at(bands.mid, i)
    upper = value_at(bands.upper, i)
    lower = value_at(bands.lower, i)
    current_vol_ma = value_at(vol_ma, i)
    current_adx = value_at(adx.adx, i)
    prev_adx = value_at(adx.adx, i - 1)

    bandwidth: Optional[float] = None
    if upper is not None and lower is not None and mid:
        bandwidth = (upper - lower) / mid * 100.0

    vol_ratio: Optional[float] = None
    if current_vol_ma:
        vol_ratio = volumes[i] / current_vol_ma

    # A zero band, zero volume MA or zero ADX carries no signal either.
    state = BreakoutState.NEUTRAL
    if upper and mid and vol_ratio is not None and current_adx:
        state = classify_breakout(closes[i], upper, mid, vol_ratio, current_adx, prev_adx, params)

    return BBBreakoutAnalysis(
        mid=round2(mid),
        upper=round2(upper),
        lower=round2(lower),
        bandwidth_pct=round2(bandwidth),
        vol_ma20=round2(current_vol_ma),
        vol_ratio=round2(vol_ratio),
        adx14=round2(current_adx),
        plus_di14=round2(value_at(adx.plus_di, i)),
        minus_di14=round2(value_at(adx.minus_di, i)),
        state=state,
    )

from __future__ import annotations

import logging
from typing import Sequence

from .constants import (
    BREAKOUT_CONFIDENCE,
    CONSOLIDATION_LEN,
    CONSOLIDATION_MAX_RANGE,
    MAX_RISK_PCT,
    MEDIUM_TERM_MIN_CANDLES,
    PULLBACK_CONFIDENCE,
    PULLBACK_RSI_MIN,
    PULLBACK_STOP_BUFFER,
    REWARD_MULTIPLE,
    RSI_PERIOD,
    VOLUME_MA_PERIOD,
)
from .models import Candle, MediumTermMetrics, MediumTermResult, Recommendation, Setup, Trend
from .rsi import calculate_rsi_series
from .series import ema, sma

logger = logging.getLogger("vn_watchlist.medium_term")


def is_pinbar(candle: Candle) -> bool:
    body = abs(candle.close - candle.open)
    lower_wick = min(candle.open, candle.close) - candle.low
    upper_wick = candle.high - max(candle.open, candle.close)
    return lower_wick >= 2 * body and lower_wick > upper_wick


def is_bullish_engulfing(prev: Candle, curr: Candle) -> bool:
    if not (curr.close > curr.open and prev.close < prev.open):
        return False
    return curr.close > prev.open and curr.open < prev.close


def classify_trend(price: float, ema50: float, ema200: float, slope50: float) -> Trend:
    if price > ema200 and ema50 > ema200 and slope50 >= 0:
        return Trend.UPTREND
    if price < ema200 and ema50 < ema200 and slope50 < 0:
        return Trend.DOWNTREND
    return Trend.NEUTRAL


def analyze_medium_term(symbol: str, candles: Sequence[Candle]) -> MediumTermResult:
    """Classify the medium-term trend and look for a pullback or breakout entry.

    Pullback is checked before breakout. Any BUY whose stop sits more than
    MAX_RISK_PCT below the price is downgraded to WAIT.
    """
    if len(candles) < MEDIUM_TERM_MIN_CANDLES:
        return MediumTermResult(
            symbol=symbol,
            trend=Trend.NEUTRAL,
            setup=Setup.NONE,
            recommendation=Recommendation.WAIT,
            stop_loss=None,
            target=None,
            confidence=0,
            details=[f"Not enough data (need at least {MEDIUM_TERM_MIN_CANDLES} candles)"],
        )

    closes = [c.close for c in candles]
    volumes = [c.volume for c in candles]

    ema20 = ema(closes, 20)
    ema50 = ema(closes, 50)
    ema200 = ema(closes, 200)
    rsi = calculate_rsi_series(closes, RSI_PERIOD)
    vol_ma = sma(volumes, VOLUME_MA_PERIOD)

    idx = len(candles) - 1
    today = candles[idx]
    yesterday = candles[idx - 1]
    price = today.close
    c_ema20 = ema20[idx] or 0.0
    c_ema50 = ema50[idx] or 0.0
    c_ema200 = ema200[idx] or 0.0
    c_rsi = rsi[idx] or 0.0
    c_vol = today.volume
    c_vol_ma = vol_ma[idx] or 0.0
    slope50 = c_ema50 - (ema50[idx - 1] or 0.0)

    trend = classify_trend(price, c_ema50, c_ema200, slope50)
    result = MediumTermResult(
        symbol=symbol,
        trend=trend,
        setup=Setup.NONE,
        recommendation=Recommendation.WAIT,
        stop_loss=None,
        target=None,
        confidence=0,
        details=[f"Trend: {trend.value}"],
        metrics=MediumTermMetrics(
            price=round(price, 2),
            ema20=round(c_ema20, 2),
            ema50=round(c_ema50, 2),
            ema200=round(c_ema200, 2),
            rsi=round(c_rsi, 2),
            vol=c_vol,
            vol_ma20=round(c_vol_ma, 2),
        ),
    )

    if trend == Trend.DOWNTREND:
        result.recommendation = Recommendation.NO_TRADE
        result.details.append("Price below EMA200 and bearish structure. Avoid long positions.")
        return result
    if trend == Trend.NEUTRAL:
        result.details.append("Market structure is mixed. Waiting for clear trend.")
        return result

    # Pullback: today's range touches the EMA20/EMA50 band on light volume with a rejection candle.
    zone_top = max(c_ema20, c_ema50)
    zone_bot = min(c_ema20, c_ema50)
    in_zone = today.low <= zone_top and today.high >= zone_bot
    pinbar = is_pinbar(today)
    engulfing = is_bullish_engulfing(yesterday, today)
    avg3_vol = (volumes[idx] + volumes[idx - 1] + volumes[idx - 2]) / 3
    light_volume = avg3_vol < c_vol_ma
    pullback = in_zone and c_rsi > PULLBACK_RSI_MIN and (pinbar or engulfing) and light_volume

    # Breakout: tight 20-candle box ending yesterday, volume drying up, then a close above the box.
    window = candles[idx - CONSOLIDATION_LEN : idx]
    box_high = max(c.high for c in window)
    box_low = min(c.low for c in window)
    tight = box_low > 0 and (box_high - box_low) / box_low < CONSOLIDATION_MAX_RANGE
    half = CONSOLIDATION_LEN // 2
    vol_first = sum(c.volume for c in window[:half])
    vol_second = sum(c.volume for c in window[half : half * 2])
    dry_up = vol_second < vol_first
    breakout = price > box_high and c_vol > c_vol_ma

    if pullback:
        stop = min(today.low, yesterday.low) * PULLBACK_STOP_BUFFER
        result.setup = Setup.PULLBACK
        result.recommendation = Recommendation.BUY_PULLBACK
        result.stop_loss = stop
        result.target = price + (price - stop) * REWARD_MULTIPLE
        result.confidence = PULLBACK_CONFIDENCE
        result.details.append("Confirmed Pullback to EMA20-50 zone.")
        if pinbar:
            result.details.append("Pinbar rejection candle detected.")
        if engulfing:
            result.details.append("Bullish Engulfing pattern detected.")
    elif tight and breakout and dry_up:
        stop = box_low
        result.setup = Setup.BREAKOUT
        result.recommendation = Recommendation.BUY_BREAKOUT
        result.stop_loss = stop
        result.target = price + (price - stop) * REWARD_MULTIPLE
        result.confidence = BREAKOUT_CONFIDENCE
        result.details.append(f"Breakout from {CONSOLIDATION_LEN}-day consolidation.")
        if c_vol_ma:
            result.details.append(f"Volume spike {c_vol / c_vol_ma * 100:.0f}% of average.")
    elif in_zone:
        result.details.append("Price in Pullback zone. Waiting for rejection candle/volume.")
    elif tight:
        result.details.append("Price consolidating. Watch for breakout.")
    else:
        result.details.append("Uptrend strong. Waiting for setup.")

    if result.stop_loss is not None and price:
        risk_pct = (price - result.stop_loss) / price * 100.0
        if risk_pct > MAX_RISK_PCT:
            logger.debug("medium_term symbol=%s action=risk_gate risk_pct=%.2f", symbol, risk_pct)
            result.recommendation = Recommendation.WAIT
            result.details.append(f"Stop Loss too wide ({risk_pct:.1f}%). Risk/Reward unfavorable.")

    return result

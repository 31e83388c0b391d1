from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional

from .constants import RSI_MIDLINE, STRATEGY_BB_BREAKOUT, STRATEGY_EMA200_MACD, STRATEGY_RSI
from .models import (
    BreakoutState,
    ConfluenceSignal,
    RSIState,
    ScanRow,
    StrategySignal,
    TrendMomentumState,
    UserScanSettings,
)
from .trend import SELL_REASON_MACD


def confluence_signal(row: ScanRow) -> Optional[ConfluenceSignal]:
    """BUY/SELL only when RSI, EMA200+MACD and Bollinger all agree."""
    rsi = row.rsi.value
    if rsi is None:
        return None
    if (
        rsi > RSI_MIDLINE
        and row.ema_macd.state == TrendMomentumState.BUY
        and row.bb.state == BreakoutState.BREAKOUT_BUY
    ):
        return ConfluenceSignal.BUY
    if (
        rsi < RSI_MIDLINE
        and row.ema_macd.state == TrendMomentumState.SELL
        and row.bb.state == BreakoutState.BREAKOUT_EXIT
    ):
        return ConfluenceSignal.SELL
    return None


def rsi_signal(row: ScanRow, settings: UserScanSettings) -> Optional[StrategySignal]:
    rsi = row.rsi.value
    if rsi is None:
        return None
    slope = row.rsi.slope_5
    if rsi < settings.oversold:
        state = RSIState.OVERSOLD.value
        message = f"RSI {rsi} (oversold). Momentum: {slope}"
        if slope is not None and slope > 0:
            message += " [RECOVERY SIGNAL]"
    elif rsi > settings.overbought:
        state = RSIState.OVERBOUGHT.value
        message = f"RSI {rsi} (overbought). Momentum: {slope}"
    else:
        return None
    return StrategySignal(
        user_id=settings.user_id,
        symbol=row.symbol,
        scan_date=row.scan_date,
        strategy=STRATEGY_RSI,
        signal_type="INFO",
        state=state,
        message=message,
        values={"rsi": rsi, "slope_5": slope},
    )


def ema_macd_signal(row: ScanRow, settings: UserScanSettings) -> Optional[StrategySignal]:
    if not settings.enable_ema200_macd:
        return None
    analysis = row.ema_macd
    if analysis.state == TrendMomentumState.BUY:
        signal_type = "BUY"
        message = "BUY signal: MACD crossed above signal inside the EMA200 uptrend."
    elif analysis.state == TrendMomentumState.SELL:
        signal_type = "SELL"
        if analysis.sell_reason == SELL_REASON_MACD:
            message = "SELL signal: MACD crossed below signal."
        else:
            message = "SELL signal: price broke below EMA200."
    else:
        return None
    return StrategySignal(
        user_id=settings.user_id,
        symbol=row.symbol,
        scan_date=row.scan_date,
        strategy=STRATEGY_EMA200_MACD,
        signal_type=signal_type,
        state=analysis.state.value,
        message=message,
        values={
            "ema200": analysis.ema200,
            "macd": analysis.macd,
            "macd_signal": analysis.macd_signal,
            "macd_hist": analysis.macd_hist,
        },
    )


def bb_signal(row: ScanRow, settings: UserScanSettings) -> Optional[StrategySignal]:
    if not settings.enable_bb_breakout:
        return None
    bb = row.bb
    if bb.state == BreakoutState.BREAKOUT_BUY:
        signal_type = "BUY"
        message = f"BB breakout: close above upper band. VolRatio: {bb.vol_ratio}x, ADX: {bb.adx14}."
    elif bb.state == BreakoutState.BREAKOUT_EXIT:
        signal_type = "EXIT"
        message = "Exit warning: close below the middle band (SMA20)."
    elif bb.state == BreakoutState.BREAKOUT_WEAK:
        signal_type = "INFO"
        message = (
            f"Weak breakout: close above upper band but lacking volume ({bb.vol_ratio}x) "
            f"or trend strength (ADX: {bb.adx14})."
        )
    else:
        return None
    return StrategySignal(
        user_id=settings.user_id,
        symbol=row.symbol,
        scan_date=row.scan_date,
        strategy=STRATEGY_BB_BREAKOUT,
        signal_type=signal_type,
        state=bb.state.value,
        message=message,
        values={
            "bb_mid": bb.mid,
            "bb_upper": bb.upper,
            "bb_lower": bb.lower,
            "adx14": bb.adx14,
            "vol_ratio": bb.vol_ratio,
        },
    )


def strategy_signals(row: ScanRow, settings: UserScanSettings) -> List[StrategySignal]:
    out: List[StrategySignal] = []
    for build in (rsi_signal, ema_macd_signal, bb_signal):
        signal = build(row, settings)
        if signal is not None:
            out.append(signal)
    return out


def collect_strategy_signals(
    rows: Iterable[ScanRow],
    watch: Iterable[tuple[str, str]],
    settings_by_user: dict[str, UserScanSettings],
) -> List[StrategySignal]:
    """Signals for every (user_id, symbol) pair, one per dedupe key."""
    by_symbol = {row.symbol: row for row in rows}
    seen: set[str] = set()
    out: List[StrategySignal] = []
    for user_id, symbol in watch:
        row = by_symbol.get(symbol)
        if row is None:
            continue
        settings = settings_by_user.get(user_id) or UserScanSettings()
        if settings.user_id != user_id:
            settings = replace(settings, user_id=user_id)
        for signal in strategy_signals(row, settings):
            if signal.dedupe_key in seen:
                continue
            seen.add(signal.dedupe_key)
            out.append(signal)
    return out

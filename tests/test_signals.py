from __future__ import annotations

from dataclasses import replace
from typing import Optional

from vn_watchlist.constants import STRATEGY_BB_BREAKOUT, STRATEGY_EMA200_MACD, STRATEGY_RSI
from vn_watchlist.models import (
    BBBreakoutAnalysis,
    BreakoutState,
    ConfluenceSignal,
    EMAMACDAnalysis,
    MACDCross,
    NearFlag,
    RSIResult,
    RSIState,
    ScanRow,
    TrendMomentumState,
    UserScanSettings,
)
from vn_watchlist.signals import collect_strategy_signals, confluence_signal, strategy_signals
from vn_watchlist.storage import Storage
from vn_watchlist.trend import SELL_REASON_EMA_BREAK


def _row(
    rsi: Optional[float],
    trend: TrendMomentumState,
    bb: BreakoutState,
    symbol: str = "FPT",
    slope: Optional[float] = 1.0,
) -> ScanRow:
    return ScanRow(
        symbol=symbol,
        close=120.5,
        vol=1_500_000,
        rsi=RSIResult(
            value=rsi,
            slope_5=slope,
            state=RSIState.NEUTRAL,
            near_flag=NearFlag.NONE,
            distance_to_30=None,
            distance_to_70=None,
        ),
        ema_macd=EMAMACDAnalysis(
            ema200=110.0,
            distance_to_ema200_pct=9.55,
            macd=1.2,
            macd_signal=0.9,
            macd_hist=0.3,
            macd_cross=MACDCross.NONE,
            state=trend,
        ),
        bb=BBBreakoutAnalysis(
            mid=115.0,
            upper=119.0,
            lower=111.0,
            bandwidth_pct=6.96,
            vol_ma20=1_000_000,
            vol_ratio=1.5,
            adx14=25.0,
            plus_di14=30.0,
            minus_di14=12.0,
            state=bb,
        ),
        scan_date="2024-05-06",
    )


def test_confluence_buy():
    row = _row(58.0, TrendMomentumState.BUY, BreakoutState.BREAKOUT_BUY)
    assert confluence_signal(row) == ConfluenceSignal.BUY


def test_confluence_sell():
    row = _row(42.0, TrendMomentumState.SELL, BreakoutState.BREAKOUT_EXIT)
    assert confluence_signal(row) == ConfluenceSignal.SELL


def test_confluence_requires_all_three():
    assert confluence_signal(_row(58.0, TrendMomentumState.BUY, BreakoutState.BREAKOUT_WEAK)) is None
    assert confluence_signal(_row(50.0, TrendMomentumState.BUY, BreakoutState.BREAKOUT_BUY)) is None
    assert confluence_signal(_row(50.0, TrendMomentumState.SELL, BreakoutState.BREAKOUT_EXIT)) is None


def test_confluence_needs_rsi():
    assert confluence_signal(_row(None, TrendMomentumState.SELL, BreakoutState.BREAKOUT_EXIT)) is None


def test_oversold_recovery_message():
    signals = strategy_signals(
        _row(25.0, TrendMomentumState.BEAR, BreakoutState.NEUTRAL, slope=1.2),
        UserScanSettings(user_id="u1"),
    )
    assert [s.strategy for s in signals] == [STRATEGY_RSI]
    assert signals[0].state == "OVERSOLD"
    assert signals[0].message.endswith("[RECOVERY SIGNAL]")


def test_user_thresholds_apply():
    row = _row(68.0, TrendMomentumState.BULL_NO_SIGNAL, BreakoutState.NEUTRAL)
    assert strategy_signals(row, UserScanSettings()) == []
    signals = strategy_signals(row, UserScanSettings(overbought=65.0))
    assert signals[0].state == "OVERBOUGHT"


def test_ema_break_message():
    row = _row(45.0, TrendMomentumState.SELL, BreakoutState.NEUTRAL)
    row = replace(row, ema_macd=replace(row.ema_macd, sell_reason=SELL_REASON_EMA_BREAK))
    (signal,) = strategy_signals(row, UserScanSettings())
    assert signal.strategy == STRATEGY_EMA200_MACD
    assert signal.signal_type == "SELL"
    assert "broke below EMA200" in signal.message


def test_disabled_strategies_are_skipped():
    row = _row(55.0, TrendMomentumState.BUY, BreakoutState.BREAKOUT_BUY)
    settings = UserScanSettings(enable_ema200_macd=False, enable_bb_breakout=False)
    assert strategy_signals(row, settings) == []


def test_weak_breakout_dedupe_key():
    (signal,) = strategy_signals(
        _row(55.0, TrendMomentumState.BULL_NO_SIGNAL, BreakoutState.BREAKOUT_WEAK),
        UserScanSettings(user_id="u1"),
    )
    assert signal.strategy == STRATEGY_BB_BREAKOUT
    assert signal.signal_type == "INFO"
    assert signal.dedupe_key == "u1-FPT-2024-05-06-BB_BREAKOUT-WEAK"


def test_rsi_dedupe_key_uses_state():
    (signal,) = strategy_signals(
        _row(25.0, TrendMomentumState.BEAR, BreakoutState.NEUTRAL),
        UserScanSettings(user_id="u1"),
    )
    assert signal.signal_type == "INFO"
    assert signal.dedupe_key == "u1-FPT-2024-05-06-RSI-OVERSOLD"


def test_collect_dedupes_per_user_and_symbol():
    rows = [
        _row(55.0, TrendMomentumState.BUY, BreakoutState.BREAKOUT_BUY, symbol="FPT"),
        _row(55.0, TrendMomentumState.BULL_NO_SIGNAL, BreakoutState.NEUTRAL, symbol="VNM"),
    ]
    watch = [("u1", "FPT"), ("u1", "FPT"), ("u2", "FPT"), ("u1", "VNM"), ("u1", "HPG")]
    signals = collect_strategy_signals(rows, watch, {"u2": UserScanSettings(enable_bb_breakout=False)})

    keys = [s.dedupe_key for s in signals]
    assert len(keys) == len(set(keys))
    assert {(s.user_id, s.strategy) for s in signals} == {
        ("u1", STRATEGY_EMA200_MACD),
        ("u1", STRATEGY_BB_BREAKOUT),
        ("u2", STRATEGY_EMA200_MACD),
    }


def test_storage_keeps_first_signal_per_dedupe_key():
    storage = Storage(":memory:")
    try:
        signals = strategy_signals(
            _row(25.0, TrendMomentumState.BEAR, BreakoutState.BREAKOUT_EXIT),
            UserScanSettings(user_id="u1"),
        )
        assert len(storage.insert_strategy_signals(signals)) == 2
        assert storage.insert_strategy_signals(signals) == []

        stored = storage.list_strategy_signals("u1")
        assert sorted(s.dedupe_key for s in stored) == sorted(s.dedupe_key for s in signals)
        rsi = next(s for s in stored if s.strategy == STRATEGY_RSI)
        assert rsi.values == {"rsi": 25.0, "slope_5": 1.0}
        assert storage.list_strategy_signals("u2") == []
    finally:
        storage.close()


def test_storage_scan_settings_upsert():
    storage = Storage(":memory:")
    try:
        storage.upsert_scan_settings(UserScanSettings(user_id="u1", overbought=80.0, oversold=20.0))
        storage.upsert_scan_settings(UserScanSettings(user_id="u1", overbought=75.0, enable_bb_breakout=False))
        settings = storage.get_scan_settings()
        assert list(settings) == ["u1"]
        assert settings["u1"].overbought == 75.0
        assert settings["u1"].oversold == 30.0
        assert settings["u1"].enable_bb_breakout is False
    finally:
        storage.close()

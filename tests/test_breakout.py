from __future__ import annotations

from vn_watchlist.breakout import analyze_bb_breakout, calculate_adx, calculate_bollinger, classify_breakout
from vn_watchlist.models import BreakoutParams, BreakoutState


def _flat(n: int, price: float = 10.0, volume: float = 1000.0):
    return [price] * n, [price] * n, [price] * n, [volume] * n


def test_close_equal_to_upper_is_not_breakout():
    assert classify_breakout(12.0, 12.0, 10.0, 2.0, 30.0, 25.0) == BreakoutState.NEUTRAL


def test_close_equal_to_mid_is_not_exit():
    assert classify_breakout(10.0, 12.0, 10.0, 2.0, 30.0, 25.0) == BreakoutState.NEUTRAL


def test_close_below_mid_is_exit():
    assert classify_breakout(9.99, 12.0, 10.0, 0.5, 10.0, 12.0) == BreakoutState.BREAKOUT_EXIT


def test_confirmed_breakout_at_thresholds():
    assert classify_breakout(12.5, 12.0, 10.0, 1.3, 20.0, 19.0) == BreakoutState.BREAKOUT_BUY


def test_low_volume_breakout_is_weak():
    assert classify_breakout(12.5, 12.0, 10.0, 1.29, 30.0, 25.0) == BreakoutState.BREAKOUT_WEAK


def test_falling_adx_breakout_is_weak_unless_not_required():
    assert classify_breakout(12.5, 12.0, 10.0, 2.0, 30.0, 31.0) == BreakoutState.BREAKOUT_WEAK
    params = BreakoutParams(require_adx_rising=False)
    assert classify_breakout(12.5, 12.0, 10.0, 2.0, 30.0, 31.0, params) == BreakoutState.BREAKOUT_BUY


def test_unknown_previous_adx_counts_as_rising():
    assert classify_breakout(12.5, 12.0, 10.0, 2.0, 30.0, None) == BreakoutState.BREAKOUT_BUY


def test_bollinger_flat_prices_collapse():
    bands = calculate_bollinger([10.0] * 20)
    assert bands.mid[-1] == 10.0
    assert bands.upper[-1] == 10.0
    assert bands.lower[-1] == 10.0
    assert bands.mid[18] is None


def test_adx_needs_two_periods():
    highs, lows, closes, _ = _flat(27)
    assert all(v is None for v in calculate_adx(highs, lows, closes).adx)

    highs, lows, closes, _ = _flat(28)
    adx = calculate_adx(highs, lows, closes).adx
    assert adx[26] is None
    assert adx[27] == 0.0


def test_adx_flat_market_has_zero_direction():
    highs, lows, closes, _ = _flat(40)
    result = calculate_adx(highs, lows, closes)
    assert result.plus_di[-1] == 0.0
    assert result.minus_di[-1] == 0.0
    assert result.adx[-1] == 0.0


def test_analyze_insufficient_history_is_neutral():
    highs, lows, closes, volumes = _flat(10)
    analysis = analyze_bb_breakout(highs, lows, closes, volumes)
    assert analysis.mid is None
    assert analysis.adx14 is None
    assert analysis.state == BreakoutState.NEUTRAL


def test_analyze_flat_market_is_neutral():
    highs, lows, closes, volumes = _flat(30)
    analysis = analyze_bb_breakout(highs, lows, closes, volumes)
    assert analysis.mid == 10.0
    assert analysis.upper == 10.0
    assert analysis.bandwidth_pct == 0.0
    assert analysis.vol_ratio == 1.0
    assert analysis.adx14 == 0.0
    assert analysis.state == BreakoutState.NEUTRAL


def test_analyze_zero_volume_average_is_neutral():
    highs, lows, closes, volumes = _flat(29, volume=0.0)
    highs.append(12.0)
    lows.append(10.0)
    closes.append(12.0)
    volumes.append(0.0)
    analysis = analyze_bb_breakout(highs, lows, closes, volumes)
    assert analysis.vol_ratio is None
    assert analysis.state == BreakoutState.NEUTRAL


def test_analyze_close_under_mid_is_exit():
    highs, lows, closes, volumes = _flat(29)
    highs.append(10.0)
    lows.append(9.0)
    closes.append(9.0)
    volumes.append(1000.0)
    analysis = analyze_bb_breakout(highs, lows, closes, volumes)
    assert analysis.mid == 9.95
    assert analysis.state == BreakoutState.BREAKOUT_EXIT


def _spike():
    highs, lows, closes, volumes = _flat(29)
    highs.append(12.0)
    lows.append(10.0)
    closes.append(12.0)
    volumes.append(3000.0)
    return highs, lows, closes, volumes


def test_analyze_breakout_without_trend_strength_is_weak():
    analysis = analyze_bb_breakout(*_spike())
    assert analysis.vol_ratio == 2.73
    assert analysis.adx14 == 7.14
    assert analysis.plus_di14 == 100.0
    assert analysis.state == BreakoutState.BREAKOUT_WEAK


def test_analyze_breakout_confirmed_with_lower_adx_floor():
    analysis = analyze_bb_breakout(*_spike(), params=BreakoutParams(adx_min=5.0))
    assert analysis.state == BreakoutState.BREAKOUT_BUY


def test_analyze_zero_adx_under_mid_is_neutral():
    # Constant highs and lows give no directional movement, so ADX stays at 0.
    highs = [10.0] * 30
    lows = [8.0] * 30
    closes = [9.5] * 29 + [8.5]
    volumes = [1000.0] * 30
    analysis = analyze_bb_breakout(highs, lows, closes, volumes)
    assert analysis.adx14 == 0.0
    assert closes[-1] < analysis.mid
    assert analysis.state == BreakoutState.NEUTRAL

from __future__ import annotations

from vn_watchlist.series import ema, rolling_stddev, round2, sma, value_at, wilder_smooth


def test_sma_undefined_until_window_full():
    assert sma([1.0, 2.0, 3.0, 4.0, 5.0], 3) == [None, None, 2.0, 3.0, 4.0]


def test_ema_seeded_with_sma():
    values = [3.7, 1.2, 9.9, 4.4, 5.1, 6.3, 2.8, 7.7]
    e = ema(values, 5)
    s = sma(values, 5)
    assert e[:4] == [None, None, None, None]
    assert e[4] == s[4]


def test_ema_recurrence():
    # alpha = 0.5 for period 3
    assert ema([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 3) == [None, None, 2.0, 3.0, 4.0, 5.0]


def test_short_input_is_all_undefined():
    assert ema([1.0, 2.0], 3) == [None, None]
    assert sma([], 3) == []


def test_wilder_smooth():
    assert wilder_smooth(10.0, 24.0, 14) == 11.0


def test_rolling_stddev_is_population():
    values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
    out = rolling_stddev(values, 8, sma(values, 8))
    assert out[-1] == 2.0
    assert out[0] is None


def test_value_at_out_of_range():
    series = [1.0, None]
    assert value_at(series, -1) is None
    assert value_at(series, 2) is None
    assert value_at(series, 1) is None
    assert value_at(series, 0) == 1.0


def test_round2():
    assert round2(None) is None
    assert round2(1.23456) == 1.23

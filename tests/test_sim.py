from __future__ import annotations

import json

from vn_watchlist.sim import SimCandleSource, SimQuoteSource


def test_json_candles_sorted_and_deduped(tmp_path):
    path = tmp_path / "candles.json"
    path.write_text(
        json.dumps(
            {
                "fpt": [
                    {"t": 172800, "o": 101, "h": 103, "l": 100, "c": 102, "v": 900},
                    {"t": 86400, "o": 100, "h": 102, "l": 99, "c": 101, "v": 800},
                    {"t": 172800, "o": 101, "h": 104, "l": 100, "c": 103, "v": 950},
                    {"t": 259200},
                ]
            }
        ),
        encoding="utf-8",
    )
    source = SimCandleSource(str(path))
    assert source.all_symbols() == ["FPT"]
    candles = source.get_history("fpt")
    assert [c.close for c in candles] == [101.0, 103.0]
    assert source.get_history("VNM") == []


def test_csv_candles(tmp_path):
    path = tmp_path / "candles.csv"
    path.write_text(
        "symbol,datetime,open,high,low,close,volume\n"
        "VNM,2024-05-02,70,71,69,70.5,1000\n"
        "VNM,2024-05-03,70.5,72,70,71.8,1200\n"
        "HPG,2024-05-03,28,28.5,27.7,28.2,5000\n",
        encoding="utf-8",
    )
    source = SimCandleSource(str(path))
    assert source.all_symbols() == ["HPG", "VNM"]
    assert source.get_history("VNM")[-1].close == 71.8


def test_history_window(tmp_path):
    day = 86400
    path = tmp_path / "candles.json"
    path.write_text(json.dumps({"FPT": [{"t": i * day, "c": 100 + i} for i in range(100)]}), encoding="utf-8")
    candles = SimCandleSource(str(path)).get_history("FPT", days=10)
    assert len(candles) == 16
    assert candles[-1].close == 199.0


def test_quotes_replay_and_stick_on_last(tmp_path):
    path = tmp_path / "quotes.json"
    path.write_text(json.dumps({"FPT": [118.0, 120.5], "vnm": 70}), encoding="utf-8")
    source = SimQuoteSource(str(path))
    assert [source.latest_price("FPT").price for _ in range(3)] == [118.0, 120.5, 120.5]
    assert source.latest_price("VNM").price == 70.0
    assert source.latest_price("HPG") is None

from __future__ import annotations

import json

import pytest

from vn_watchlist import main as cli
from vn_watchlist.notifier import Notifier
from vn_watchlist.storage import Storage


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda **_: None)


def _base_args(tmp_path):
    return ["--config", str(tmp_path / "missing.yaml"), "--db-path", str(tmp_path / "test.db")]


def test_add_watchlist_then_poll(tmp_path, capsys):
    quotes = tmp_path / "quotes.json"
    quotes.write_text(json.dumps({"FPT": 120.5}), encoding="utf-8")

    cli.main(_base_args(tmp_path) + ["add-watchlist", "fpt", "--buy-min", "110", "--buy-max", "130"])
    cli.main(_base_args(tmp_path) + ["--quotes", str(quotes), "poll"])

    out = capsys.readouterr().out
    assert "PRICE ZONE ALERT" in out
    assert "FPT entered buy zone at $120.50" in out


def test_analyze_prints_json(tmp_path, capsys):
    candles = tmp_path / "candles.json"
    rows = [{"t": i * 86400, "c": 50 + (i % 4), "v": 1000} for i in range(40)]
    candles.write_text(json.dumps({"VNM": rows}), encoding="utf-8")

    cli.main(_base_args(tmp_path) + ["--candles", str(candles), "analyze", "VNM"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["symbol"] == "VNM"
    assert payload["ema_macd"]["state"] == "EMA200_MACD_BEAR"


def test_analyze_requires_candle_source(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(_base_args(tmp_path) + ["analyze", "VNM"])


def test_load_symbols_skips_comments(tmp_path):
    path = tmp_path / "symbols.txt"
    path.write_text("# HOSE\nfpt\n\nVNM\n", encoding="utf-8")
    assert cli.load_symbols(str(path)) == ["FPT", "VNM"]


def _repeat(times):
    def fake_run_every(task, interval):
        for _ in range(times):
            task()
        return times

    return fake_run_every


def _falling_candles(path, symbol="FPT"):
    rows = [{"t": i * 86400, "c": 200 - i, "v": 1000} for i in range(40)]
    path.write_text(json.dumps({symbol: rows}), encoding="utf-8")


def test_poll_service_replays_ticks_across_cycles(tmp_path, monkeypatch):
    quotes = tmp_path / "quotes.json"
    quotes.write_text(json.dumps({"FPT": [150, 250, 150]}), encoding="utf-8")
    cli.main(_base_args(tmp_path) + ["add-watchlist", "FPT", "--buy-min", "100", "--buy-max", "200", "--cooldown", "0"])

    monkeypatch.setattr(cli, "run_every", _repeat(3))
    sent = []
    args = cli.build_arg_parser().parse_args(_base_args(tmp_path) + ["--quotes", str(quotes), "poll", "--every", "5"])
    cli.run(args, Notifier(sink=sent.append))

    storage = Storage(str(tmp_path / "test.db"))
    try:
        assert len(storage.list_alerts()) == 2
        assert storage.get_latest_price("FPT").price == 150.0
    finally:
        storage.close()
    assert len(sent) == 2


def test_scan_service_loads_universe_once(tmp_path, monkeypatch):
    candles = tmp_path / "candles.json"
    _falling_candles(candles, symbol="VNM")
    symbols = tmp_path / "symbols.txt"
    symbols.write_text("VNM\n", encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text(
        f"db_path: {tmp_path / 'test.db'}\ncandles_path: {candles}\nscanner:\n  symbols_file: {symbols}\n",
        encoding="utf-8",
    )

    loads = []

    def counting_loader(path):
        loads.append(path)
        return ["VNM"]

    monkeypatch.setattr(cli, "load_symbols", counting_loader)
    monkeypatch.setattr(cli, "run_every", _repeat(2))
    args = cli.build_arg_parser().parse_args(["--config", str(config), "scan", "--every", "60"])
    cli.run(args, Notifier(sink=lambda _: None))

    assert loads == [str(symbols)]


def test_scan_stores_and_sends_watchlist_signals_once(tmp_path, monkeypatch):
    candles = tmp_path / "candles.json"
    _falling_candles(candles)
    cli.main(_base_args(tmp_path) + ["add-watchlist", "FPT", "--user-id", "u1"])

    monkeypatch.setattr(cli, "run_every", _repeat(2))
    sent = []
    args = cli.build_arg_parser().parse_args(_base_args(tmp_path) + ["--candles", str(candles), "scan", "--every", "60"])
    cli.run(args, Notifier(sink=sent.append))

    storage = Storage(str(tmp_path / "test.db"))
    try:
        keys = sorted(s.dedupe_key for s in storage.list_strategy_signals("u1"))
    finally:
        storage.close()
    assert len(keys) == 2
    assert keys[0].endswith("-BB_BREAKOUT-EXIT")
    assert keys[1].endswith("-RSI-OVERSOLD")
    assert sum("[RSI]" in m for m in sent) == 1
    assert sum("[BB_BREAKOUT]" in m for m in sent) == 1
    assert sum(m.startswith("MARKET SCAN SUMMARY") for m in sent) == 2


def test_scan_settings_disable_breakout_signals(tmp_path):
    candles = tmp_path / "candles.json"
    _falling_candles(candles)
    cli.main(_base_args(tmp_path) + ["add-watchlist", "FPT", "--user-id", "u1"])
    cli.main(_base_args(tmp_path) + ["set-scan-settings", "--user-id", "u1", "--oversold", "20", "--disable-bb-breakout"])

    args = cli.build_arg_parser().parse_args(_base_args(tmp_path) + ["--candles", str(candles), "scan"])
    cli.run(args, Notifier(sink=lambda _: None))

    storage = Storage(str(tmp_path / "test.db"))
    try:
        assert storage.get_scan_settings()["u1"].oversold == 20.0
        signals = storage.list_strategy_signals()
    finally:
        storage.close()
    assert [s.strategy for s in signals] == ["RSI"]


def test_set_scan_settings_rejects_inverted_thresholds(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(_base_args(tmp_path) + ["set-scan-settings", "--overbought", "20", "--oversold", "30"])

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Optional

from .cache import TTLCache
from .config import load_config
from .logging_utils import setup_logging
from .medium_term import analyze_medium_term
from .models import Config, UserScanSettings, Watchlist
from .notifier import NotificationError, Notifier
from .poller import PricePoller
from .scanner import MarketScanner, analyze_candles
from .scheduler import run_every
from .signals import collect_strategy_signals
from .sim import SimCandleSource, SimQuoteSource
from .storage import Storage

logger = logging.getLogger("vn_watchlist")


def load_symbols(path: str) -> list[str]:
    symbols: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            symbol = line.strip().upper()
            if not symbol or symbol.startswith("#"):
                continue
            symbols.append(symbol)
    return symbols


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vn-watchlist", description="Vietnamese equity watchlist signal engine")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--db-path", default="")
    parser.add_argument("--candles", default="", help="candle fixtures: JSON file, JSON directory or CSV")
    parser.add_argument("--quotes", default="", help="quote fixtures: JSON file")
    parser.add_argument("--log-level", default="")
    parser.add_argument("--json-logs", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="run the three-pattern market scan")
    scan.add_argument("--every", type=int, default=0, help="repeat every N minutes")

    poll = sub.add_parser("poll", help="poll live prices and fire zone alerts")
    poll.add_argument("--every", type=int, default=0, help="repeat every N minutes")
    poll.add_argument("--service", action="store_true", help="repeat at poller.interval_minutes from config")

    analyze = sub.add_parser("analyze", help="print RSI, EMA200/MACD and Bollinger analysis")
    analyze.add_argument("symbol")

    medium = sub.add_parser("medium-term", help="print the medium-term trend/setup analysis")
    medium.add_argument("symbol")

    add = sub.add_parser("add-watchlist", help="create or update a watchlist entry")
    add.add_argument("symbol")
    add.add_argument("--user-id", default="local")
    add.add_argument("--id", default="")
    add.add_argument("--buy-min", type=float, default=None)
    add.add_argument("--buy-max", type=float, default=None)
    add.add_argument("--cooldown", type=int, default=None)
    add.add_argument("--disabled", action="store_true")

    settings = sub.add_parser("set-scan-settings", help="store per-user RSI thresholds and strategy toggles")
    settings.add_argument("--user-id", default="local")
    settings.add_argument("--overbought", type=float, default=None)
    settings.add_argument("--oversold", type=float, default=None)
    settings.add_argument("--disable-ema200-macd", action="store_true")
    settings.add_argument("--disable-bb-breakout", action="store_true")
    return parser


def _resolve(args: argparse.Namespace) -> Config:
    cfg = load_config(args.config)
    if args.db_path:
        cfg.db_path = args.db_path
    if args.candles:
        cfg.candles_path = args.candles
    if args.quotes:
        cfg.quotes_path = args.quotes
    if args.log_level:
        cfg.log_level = args.log_level
    return cfg


def _candle_source(cfg: Config) -> SimCandleSource:
    if not cfg.candles_path:
        raise SystemExit("Missing candle source (--candles or candles_path in config)")
    return SimCandleSource(cfg.candles_path)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def cmd_scan(
    cfg: Config,
    notifier: Notifier,
    storage: Storage,
    source: SimCandleSource,
    symbol_cache: TTLCache[list[str]],
) -> None:
    watchlists = storage.list_watchlists(enabled_only=True)

    universe_loader = None
    if cfg.symbols_file:
        universe_loader = partial(load_symbols, cfg.symbols_file)

    scanner = MarketScanner(
        source,
        notifier,
        rsi_settings=cfg.rsi,
        breakout_params=cfg.breakout,
        ema_period=cfg.ema_period,
        macd_fast=cfg.macd_fast,
        macd_slow=cfg.macd_slow,
        macd_signal=cfg.macd_signal,
        history_days=cfg.history_days,
        min_history=cfg.min_history,
        max_runtime_s=cfg.max_runtime_s,
        symbol_cache=symbol_cache,
        universe_loader=universe_loader,
        watchlist_symbols=[w.symbol for w in watchlists],
    )
    result = scanner.run_once()

    pairs = [(w.user_id, w.symbol) for w in watchlists]
    signals = collect_strategy_signals(result.rows, pairs, storage.get_scan_settings())
    new_signals = storage.insert_strategy_signals(signals)
    logger.info("strategy_signals collected=%d new=%d", len(signals), len(new_signals))
    for signal in new_signals:
        try:
            notifier.send_strategy_signal(signal)
        except NotificationError as exc:
            logger.error("strategy_signal_send_failed key=%s error=%s", signal.dedupe_key, str(exc))

    try:
        notifier.send_scan_summary(
            symbols_total=result.planned,
            processed=result.processed,
            skipped=result.skipped,
            no_data=result.no_data,
            failed=result.failed,
            signals=len(result.signals),
            timed_out=result.timed_out,
        )
    except NotificationError as exc:
        logger.error("scan_summary_send_failed error=%s", str(exc))


def cmd_poll(notifier: Notifier, storage: Storage, quotes: SimQuoteSource) -> None:
    PricePoller(storage, quotes, notifier).run_once()


def cmd_analyze(cfg: Config, symbol: str) -> None:
    candles = _candle_source(cfg).get_history(symbol, cfg.history_days)
    row = analyze_candles(
        symbol,
        candles,
        cfg.rsi,
        cfg.breakout,
        cfg.ema_period,
        cfg.macd_fast,
        cfg.macd_slow,
        cfg.macd_signal,
    )
    if row is None:
        raise SystemExit(f"No data found for symbol {symbol}")
    _print_json(asdict(row))


def cmd_medium_term(cfg: Config, symbol: str) -> None:
    # Medium-term analysis needs a longer window than the scan for EMA200 to settle.
    candles = _candle_source(cfg).get_history(symbol, max(cfg.history_days, 300))
    _print_json(asdict(analyze_medium_term(symbol, candles)))


def cmd_add_watchlist(cfg: Config, args: argparse.Namespace) -> None:
    storage = Storage(cfg.db_path)
    try:
        watchlist = Watchlist(
            id=args.id or uuid.uuid4().hex,
            user_id=args.user_id,
            symbol=args.symbol.upper(),
            buy_min=args.buy_min,
            buy_max=args.buy_max,
            enabled=not args.disabled,
            cooldown_minutes=args.cooldown if args.cooldown is not None else cfg.default_cooldown_minutes,
            created_at=datetime.now(timezone.utc),
        )
        storage.upsert_watchlist(watchlist)
    finally:
        storage.close()
    logger.info("watchlist_saved id=%s symbol=%s", watchlist.id, watchlist.symbol)
    print(watchlist.id)


def cmd_set_scan_settings(cfg: Config, args: argparse.Namespace) -> None:
    settings = UserScanSettings(
        user_id=args.user_id,
        overbought=args.overbought if args.overbought is not None else cfg.rsi.overbought,
        oversold=args.oversold if args.oversold is not None else cfg.rsi.oversold,
        enable_ema200_macd=not args.disable_ema200_macd,
        enable_bb_breakout=not args.disable_bb_breakout,
    )
    if settings.oversold >= settings.overbought:
        raise SystemExit("oversold must be below overbought")
    storage = Storage(cfg.db_path)
    try:
        storage.upsert_scan_settings(settings)
    finally:
        storage.close()
    logger.info("scan_settings_saved user_id=%s", settings.user_id)


def run(args: argparse.Namespace, notifier: Optional[Notifier] = None) -> None:
    cfg = _resolve(args)
    setup_logging(level=cfg.log_level, json_logs=args.json_logs)
    notifier = notifier or Notifier()

    if args.command == "analyze":
        cmd_analyze(cfg, args.symbol)
        return
    if args.command == "medium-term":
        cmd_medium_term(cfg, args.symbol)
        return
    if args.command == "add-watchlist":
        cmd_add_watchlist(cfg, args)
        return
    if args.command == "set-scan-settings":
        cmd_set_scan_settings(cfg, args)
        return

    if args.command == "poll" and not cfg.quotes_path:
        raise SystemExit("Missing quote source (--quotes or quotes_path in config)")

    # Sources, cache and storage live for the whole service; repeated cycles share them.
    storage = Storage(cfg.db_path)
    try:
        if args.command == "scan":
            symbol_cache: TTLCache[list[str]] = TTLCache(ttl_seconds=cfg.symbol_cache_ttl_s)
            task = partial(cmd_scan, cfg, notifier, storage, _candle_source(cfg), symbol_cache)
        else:
            task = partial(cmd_poll, notifier, storage, SimQuoteSource(cfg.quotes_path))

        every = args.every
        if not every and getattr(args, "service", False):
            every = cfg.poll_interval_minutes
        if every > 0:
            logger.info("service_start command=%s every_minutes=%d", args.command, every)
            run_every(task, timedelta(minutes=every))
            return
        task()
    finally:
        storage.close()


def main(argv: Optional[list[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)
    run(args)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)

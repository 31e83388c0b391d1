from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from .breakout import analyze_bb_breakout
from .cache import TTLCache
from .constants import LIQUIDITY_LOOKBACK
from .models import BreakoutParams, Candle, ConfluenceSignal, RSISettings, ScanRow
from .notifier import NotificationError, Notifier
from .rsi import analyze_rsi, calculate_rsi_series
from .signals import confluence_signal
from .trend import analyze_ema_macd

logger = logging.getLogger("vn_watchlist.scanner")

UNIVERSE_CACHE_KEY = "symbols"


class CandleSource(Protocol):
    def all_symbols(self) -> List[str]: ...

    def get_history(self, symbol: str, days: int = 250) -> List[Candle]: ...


@dataclass
class ScanResult:
    planned: int
    processed: int
    skipped: int
    no_data: int
    failed: int
    timed_out: bool
    rows: List[ScanRow] = field(default_factory=list)
    signals: List[tuple[ScanRow, ConfluenceSignal]] = field(default_factory=list)


def order_symbols(universe: Sequence[str], watchlist_symbols: Sequence[str]) -> List[str]:
    """Watchlist symbols first, then the rest of the universe, without duplicates."""
    seen: set[str] = set()
    out: List[str] = []
    for symbol in list(watchlist_symbols) + list(universe):
        if symbol in seen:
            continue
        seen.add(symbol)
        out.append(symbol)
    return out


def analyze_candles(
    symbol: str,
    candles: Sequence[Candle],
    rsi_settings: RSISettings = RSISettings(),
    breakout_params: BreakoutParams = BreakoutParams(),
    ema_period: int = 200,
    macd_fast: int = 12,
    macd_slow: int = 26,
    macd_signal: int = 9,
    scan_date: str = "",
) -> Optional[ScanRow]:
    """Run the three indicator engines on one symbol; None when none of them has enough data."""
    if not candles:
        return None
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    rsi = analyze_rsi(calculate_rsi_series(closes, rsi_settings.period), rsi_settings)
    ema_macd = analyze_ema_macd(closes, ema_period, macd_fast, macd_slow, macd_signal)
    bb = analyze_bb_breakout(highs, lows, closes, volumes, breakout_params)
    if rsi.value is None and ema_macd.ema200 is None and bb.mid is None:
        return None

    return ScanRow(
        symbol=symbol,
        close=closes[-1],
        vol=volumes[-1],
        rsi=rsi,
        ema_macd=ema_macd,
        bb=bb,
        scan_date=scan_date,
    )


class MarketScanner:
    def __init__(
        self,
        source: CandleSource,
        notifier: Notifier,
        *,
        rsi_settings: RSISettings = RSISettings(),
        breakout_params: BreakoutParams = BreakoutParams(),
        ema_period: int = 200,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        history_days: int = 250,
        min_history: int = 20,
        max_runtime_s: float = 280.0,
        symbol_cache: Optional[TTLCache[List[str]]] = None,
        universe_loader: Optional[Callable[[], List[str]]] = None,
        watchlist_symbols: Sequence[str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.notifier = notifier
        self.rsi_settings = rsi_settings
        self.breakout_params = breakout_params
        self.ema_period = ema_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.history_days = history_days
        self.min_history = min_history
        self.max_runtime_s = max_runtime_s
        self.symbol_cache = symbol_cache or TTLCache(ttl_seconds=3600.0)
        self.universe_loader = universe_loader or source.all_symbols
        self.watchlist_symbols = list(watchlist_symbols or [])
        self.clock = clock

    def _universe(self) -> List[str]:
        return self.symbol_cache.get_or_load(UNIVERSE_CACHE_KEY, self.universe_loader)

    def run_once(self, scan_date: str = "") -> ScanResult:
        started = self.clock()
        scan_date = scan_date or datetime.now(timezone.utc).strftime("%Y-%m-%d")
        watch = set(self.watchlist_symbols)
        symbols = order_symbols(self._universe(), self.watchlist_symbols)
        logger.info("scan_start symbols=%d watchlist=%d scan_date=%s", len(symbols), len(watch), scan_date)

        result = ScanResult(planned=len(symbols), processed=0, skipped=0, no_data=0, failed=0, timed_out=False)

        for symbol in symbols:
            if self.clock() - started > self.max_runtime_s:
                logger.warning("scan_halted reason=time_limit max_runtime_s=%.0f", self.max_runtime_s)
                result.timed_out = True
                break
            try:
                candles = self.source.get_history(symbol, self.history_days)
                if len(candles) < self.min_history:
                    logger.info("scan_symbol symbol=%s action=no_data candles=%d", symbol, len(candles))
                    result.no_data += 1
                    continue

                recent_vol = sum(c.volume for c in candles[-LIQUIDITY_LOOKBACK:])
                if recent_vol == 0 and symbol not in watch:
                    logger.info("scan_symbol symbol=%s action=skip_illiquid", symbol)
                    result.skipped += 1
                    continue

                row = analyze_candles(
                    symbol,
                    candles,
                    self.rsi_settings,
                    self.breakout_params,
                    self.ema_period,
                    self.macd_fast,
                    self.macd_slow,
                    self.macd_signal,
                    scan_date=scan_date,
                )
            except Exception:
                logger.exception("scan_symbol symbol=%s action=failed", symbol)
                result.failed += 1
                continue

            if row is None:
                result.no_data += 1
                continue

            result.rows.append(row)
            result.processed += 1
            logger.info(
                "scan_symbol symbol=%s action=analyzed rsi=%s ema_macd=%s bb=%s",
                symbol,
                row.rsi.value,
                row.ema_macd.state.value,
                row.bb.state.value,
            )

            signal = confluence_signal(row)
            if signal is not None:
                result.signals.append((row, signal))

        for row, signal in result.signals:
            try:
                self.notifier.send_confluence(row, signal)
                logger.info("scan_symbol symbol=%s action=confluence signal=%s", row.symbol, signal.value)
            except NotificationError as exc:
                logger.error("scan_symbol symbol=%s action=notify_failed error=%s", row.symbol, str(exc))

        logger.info(
            "scan_end planned=%d processed=%d skipped=%d no_data=%d failed=%d signals=%d timed_out=%s",
            result.planned,
            result.processed,
            result.skipped,
            result.no_data,
            result.failed,
            len(result.signals),
            str(result.timed_out).lower(),
        )
        return result

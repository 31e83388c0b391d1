from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .constants import SECONDS_PER_DAY
from .models import Candle, Quote

logger = logging.getLogger("vn_watchlist.sim")


def _parse_ts(value: object) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    fmt = "%Y-%m-%d %H:%M:%S" if " " in text else "%Y-%m-%d"
    return int(datetime.strptime(text, fmt).replace(tzinfo=timezone.utc).timestamp())


def _parse_candle(item: dict) -> Optional[Candle]:
    # Accepts both short (t/o/h/l/c/v) and long (datetime/open/...) keys.
    try:
        ts = _parse_ts(item["t"] if "t" in item else item["datetime"])
        close = float(item["c"] if "c" in item else item["close"])
        open_ = item.get("o", item.get("open"))
        high = item.get("h", item.get("high"))
        low = item.get("l", item.get("low"))
        volume = item.get("v", item.get("volume"))
        return Candle(
            ts=ts,
            open=float(open_) if open_ not in (None, "") else close,
            high=float(high) if high not in (None, "") else close,
            low=float(low) if low not in (None, "") else close,
            close=close,
            volume=float(volume) if volume not in (None, "") else 0.0,
        )
    except (KeyError, TypeError, ValueError):
        return None


def _dedupe_sorted(candles: List[Candle]) -> List[Candle]:
    by_ts: Dict[int, Candle] = {}
    for candle in candles:
        by_ts[candle.ts] = candle
    return [by_ts[ts] for ts in sorted(by_ts)]


class SimCandleSource:
    """Daily candles from a JSON file, a directory of <SYMBOL>.json files, or a CSV."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._data: Dict[str, List[Candle]] = {}
        self._load()

    def _load(self) -> None:
        if os.path.isdir(self.path):
            for filename in sorted(os.listdir(self.path)):
                if not filename.endswith(".json"):
                    continue
                with open(os.path.join(self.path, filename), "r", encoding="utf-8") as f:
                    payload = json.load(f)
                values = payload.get("values", []) if isinstance(payload, dict) else payload
                symbol = payload.get("symbol") if isinstance(payload, dict) else None
                self._add(str(symbol or filename[:-5]).upper(), values)
        elif self.path.endswith(".csv"):
            rows: Dict[str, List[dict]] = {}
            with open(self.path, "r", encoding="utf-8") as f:
                for row in csv.DictReader(f):
                    symbol = (row.get("symbol") or "").strip()
                    if symbol:
                        rows.setdefault(symbol.upper(), []).append(row)
            for symbol, values in rows.items():
                self._add(symbol, values)
        else:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            for symbol, values in payload.items():
                self._add(str(symbol).upper(), values)

        logger.info("sim_candles_loaded symbols=%d path=%s", len(self._data), self.path)

    def _add(self, symbol: str, values: List[dict]) -> None:
        candles = [c for c in (_parse_candle(v) for v in values) if c is not None]
        self._data[symbol] = _dedupe_sorted(candles)

    def all_symbols(self) -> List[str]:
        return sorted(self._data)

    def get_history(self, symbol: str, days: int = 250) -> List[Candle]:
        candles = self._data.get(symbol.upper())
        if not candles:
            logger.warning("sim_candles_missing symbol=%s", symbol)
            return []
        # Calendar lookback with slack for non-trading days, as the live chart API is queried.
        cutoff = candles[-1].ts - int(days * SECONDS_PER_DAY * 1.5)
        return [c for c in candles if c.ts >= cutoff]


class SimQuoteSource:
    """Live quotes from JSON: {"FPT": 120.5} or {"FPT": [118.0, 120.5]} replayed one tick per call."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._ticks: Dict[str, List[float]] = {}
        self._index: Dict[str, int] = {}
        self._load()

    def _load(self) -> None:
        with open(self.path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        for symbol, value in payload.items():
            values = value if isinstance(value, list) else [value]
            ticks: List[float] = []
            for v in values:
                try:
                    ticks.append(float(v))
                except (TypeError, ValueError):
                    continue
            if ticks:
                self._ticks[str(symbol).upper()] = ticks
                self._index[str(symbol).upper()] = 0
        logger.info("sim_quotes_loaded symbols=%d path=%s", len(self._ticks), self.path)

    def latest_price(self, symbol: str) -> Optional[Quote]:
        key = symbol.upper()
        ticks = self._ticks.get(key)
        if not ticks:
            return None
        idx = self._index.get(key, 0)
        price = ticks[min(idx, len(ticks) - 1)]
        self._index[key] = idx + 1
        return Quote(symbol=symbol, price=price, ts=datetime.now(timezone.utc))

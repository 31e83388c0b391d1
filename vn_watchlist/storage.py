from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .models import AlertEvent, Quote, StrategySignal, UserScanSettings, Watchlist, WatchlistZoneState


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Storage:
    def __init__(self, path: str = "vn_watchlist.db") -> None:
        self.path = path
        self._conn = sqlite3.connect(self.path)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS watchlists(
                id TEXT NOT NULL PRIMARY KEY,
                user_id TEXT NOT NULL,
                symbol TEXT NOT NULL,
                buy_min REAL,
                buy_max REAL,
                enabled INTEGER NOT NULL,
                cooldown_minutes INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS watchlist_state(
                watchlist_id TEXT NOT NULL PRIMARY KEY,
                last_in_zone INTEGER NOT NULL,
                last_price REAL,
                last_ts TEXT,
                last_alert_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS alerts(
                id TEXT NOT NULL PRIMARY KEY,
                user_id TEXT NOT NULL,
                watchlist_id TEXT NOT NULL,
                symbol TEXT NOT NULL,
                price REAL NOT NULL,
                reason TEXT NOT NULL,
                triggered_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS latest_prices(
                symbol TEXT NOT NULL PRIMARY KEY,
                price REAL NOT NULL,
                ts TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS strategy_signals(
                dedupe_key TEXT NOT NULL PRIMARY KEY,
                user_id TEXT NOT NULL,
                symbol TEXT NOT NULL,
                scan_date TEXT NOT NULL,
                strategy TEXT NOT NULL,
                signal_type TEXT NOT NULL,
                state TEXT NOT NULL,
                message TEXT NOT NULL,
                signal_values TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS user_scan_settings(
                user_id TEXT NOT NULL PRIMARY KEY,
                overbought REAL NOT NULL,
                oversold REAL NOT NULL,
                enable_ema200_macd INTEGER NOT NULL,
                enable_bb_breakout INTEGER NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def upsert_watchlist(self, watchlist: Watchlist) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO watchlists(id, user_id, symbol, buy_min, buy_max, enabled, cooldown_minutes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id=excluded.user_id,
                symbol=excluded.symbol,
                buy_min=excluded.buy_min,
                buy_max=excluded.buy_max,
                enabled=excluded.enabled,
                cooldown_minutes=excluded.cooldown_minutes
            """,
            (
                watchlist.id,
                watchlist.user_id,
                watchlist.symbol,
                watchlist.buy_min,
                watchlist.buy_max,
                int(watchlist.enabled),
                watchlist.cooldown_minutes,
                _to_iso(watchlist.created_at),
            ),
        )
        self._conn.commit()

    def list_watchlists(self, enabled_only: bool = True) -> List[Watchlist]:
        cur = self._conn.cursor()
        query = "SELECT * FROM watchlists"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY created_at, id"
        return [
            Watchlist(
                id=str(row["id"]),
                user_id=str(row["user_id"]),
                symbol=str(row["symbol"]),
                buy_min=row["buy_min"],
                buy_max=row["buy_max"],
                enabled=bool(row["enabled"]),
                cooldown_minutes=int(row["cooldown_minutes"]),
                created_at=_from_iso(row["created_at"]) or datetime.now(timezone.utc),
            )
            for row in cur.execute(query).fetchall()
        ]

    def get_zone_state(self, watchlist_id: str) -> Optional[WatchlistZoneState]:
        cur = self._conn.cursor()
        row = cur.execute(
            """
            SELECT watchlist_id, last_in_zone, last_price, last_ts, last_alert_at
            FROM watchlist_state
            WHERE watchlist_id = ?
            """,
            (watchlist_id,),
        ).fetchone()
        if not row:
            return None
        return WatchlistZoneState(
            watchlist_id=str(row["watchlist_id"]),
            last_in_zone=bool(row["last_in_zone"]),
            last_price=row["last_price"],
            last_ts=_from_iso(row["last_ts"]),
            last_alert_at=_from_iso(row["last_alert_at"]),
        )

    def upsert_zone_state(self, state: WatchlistZoneState) -> None:
        self._write_zone_state(self._conn.cursor(), state)
        self._conn.commit()

    def record_tick(self, state: WatchlistZoneState, alert: Optional[AlertEvent]) -> Optional[str]:
        """Write the alert (if any) and the new zone state in one transaction."""
        alert_id: Optional[str] = None
        with self._conn:
            cur = self._conn.cursor()
            if alert is not None:
                alert_id = self._write_alert(cur, alert)
            self._write_zone_state(cur, state)
        return alert_id

    def _write_zone_state(self, cur: sqlite3.Cursor, state: WatchlistZoneState) -> None:
        cur.execute(
            """
            INSERT INTO watchlist_state(watchlist_id, last_in_zone, last_price, last_ts, last_alert_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(watchlist_id) DO UPDATE SET
                last_in_zone=excluded.last_in_zone,
                last_price=excluded.last_price,
                last_ts=excluded.last_ts,
                last_alert_at=excluded.last_alert_at
            """,
            (
                state.watchlist_id,
                int(state.last_in_zone),
                state.last_price,
                _to_iso(state.last_ts),
                _to_iso(state.last_alert_at),
            ),
        )

    def _write_alert(self, cur: sqlite3.Cursor, alert: AlertEvent) -> str:
        alert_id = uuid.uuid4().hex
        cur.execute(
            """
            INSERT INTO alerts(id, user_id, watchlist_id, symbol, price, reason, triggered_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                alert_id,
                alert.user_id,
                alert.watchlist_id,
                alert.symbol,
                alert.price,
                alert.reason,
                _to_iso(alert.triggered_at),
            ),
        )
        return alert_id

    def list_alerts(self, watchlist_id: Optional[str] = None) -> List[AlertEvent]:
        cur = self._conn.cursor()
        if watchlist_id is None:
            rows = cur.execute("SELECT * FROM alerts ORDER BY triggered_at").fetchall()
        else:
            rows = cur.execute(
                "SELECT * FROM alerts WHERE watchlist_id = ? ORDER BY triggered_at",
                (watchlist_id,),
            ).fetchall()
        return [
            AlertEvent(
                symbol=str(row["symbol"]),
                price=float(row["price"]),
                reason=str(row["reason"]),
                triggered_at=_from_iso(row["triggered_at"]) or datetime.now(timezone.utc),
                watchlist_id=str(row["watchlist_id"]),
                user_id=str(row["user_id"]),
            )
            for row in rows
        ]

    def upsert_latest_price(self, quote: Quote) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO latest_prices(symbol, price, ts)
            VALUES (?, ?, ?)
            ON CONFLICT(symbol) DO UPDATE SET price=excluded.price, ts=excluded.ts
            """,
            (quote.symbol, quote.price, _to_iso(quote.ts)),
        )
        self._conn.commit()

    def get_latest_price(self, symbol: str) -> Optional[Quote]:
        cur = self._conn.cursor()
        row = cur.execute(
            "SELECT symbol, price, ts FROM latest_prices WHERE symbol = ?",
            (symbol,),
        ).fetchone()
        if not row:
            return None
        return Quote(
            symbol=str(row["symbol"]),
            price=float(row["price"]),
            ts=_from_iso(row["ts"]) or datetime.now(timezone.utc),
        )

    def insert_strategy_signals(self, signals: Iterable[StrategySignal]) -> List[StrategySignal]:
        """Store signals by dedupe key; returns only the ones not seen before."""
        created_at = _to_iso(datetime.now(timezone.utc))
        inserted: List[StrategySignal] = []
        with self._conn:
            cur = self._conn.cursor()
            for signal in signals:
                cur.execute(
                    """
                    INSERT OR IGNORE INTO strategy_signals(
                        dedupe_key, user_id, symbol, scan_date, strategy,
                        signal_type, state, message, signal_values, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        signal.dedupe_key,
                        signal.user_id,
                        signal.symbol,
                        signal.scan_date,
                        signal.strategy,
                        signal.signal_type,
                        signal.state,
                        signal.message,
                        json.dumps(signal.values, sort_keys=True),
                        created_at,
                    ),
                )
                if cur.rowcount == 1:
                    inserted.append(signal)
        return inserted

    def list_strategy_signals(self, user_id: Optional[str] = None) -> List[StrategySignal]:
        cur = self._conn.cursor()
        if user_id is None:
            rows = cur.execute("SELECT * FROM strategy_signals ORDER BY created_at, dedupe_key").fetchall()
        else:
            rows = cur.execute(
                "SELECT * FROM strategy_signals WHERE user_id = ? ORDER BY created_at, dedupe_key",
                (user_id,),
            ).fetchall()
        return [
            StrategySignal(
                user_id=str(row["user_id"]),
                symbol=str(row["symbol"]),
                scan_date=str(row["scan_date"]),
                strategy=str(row["strategy"]),
                signal_type=str(row["signal_type"]),
                state=str(row["state"]),
                message=str(row["message"]),
                values=json.loads(row["signal_values"]),
            )
            for row in rows
        ]

    def upsert_scan_settings(self, settings: UserScanSettings) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO user_scan_settings(user_id, overbought, oversold, enable_ema200_macd, enable_bb_breakout)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                overbought=excluded.overbought,
                oversold=excluded.oversold,
                enable_ema200_macd=excluded.enable_ema200_macd,
                enable_bb_breakout=excluded.enable_bb_breakout
            """,
            (
                settings.user_id,
                settings.overbought,
                settings.oversold,
                int(settings.enable_ema200_macd),
                int(settings.enable_bb_breakout),
            ),
        )
        self._conn.commit()

    def get_scan_settings(self) -> Dict[str, UserScanSettings]:
        cur = self._conn.cursor()
        return {
            str(row["user_id"]): UserScanSettings(
                user_id=str(row["user_id"]),
                overbought=float(row["overbought"]),
                oversold=float(row["oversold"]),
                enable_ema200_macd=bool(row["enable_ema200_macd"]),
                enable_bb_breakout=bool(row["enable_bb_breakout"]),
            )
            for row in cur.execute("SELECT * FROM user_scan_settings").fetchall()
        }

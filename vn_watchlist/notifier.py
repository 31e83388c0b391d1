from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import AlertEvent, ConfluenceSignal, ScanRow, StrategySignal

logger = logging.getLogger("vn_watchlist.notifier")

Sink = Callable[[str], None]


class NotificationError(Exception):
    pass


def format_vn_price(value: float) -> str:
    # vi-VN grouping: dot for thousands, comma for decimals.
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


class Notifier:
    """Formats outbound messages and hands them to a delivery sink.

    Delivery (Telegram, email, ...) lives outside this package; a sink that
    fails should raise NotificationError.
    """

    def __init__(self, sink: Optional[Sink] = None) -> None:
        self.sink = sink or print
        self.sent = 0

    def send_zone_alert(self, alert: AlertEvent) -> None:
        message = (
            "PRICE ZONE ALERT\n"
            f"Symbol: {alert.symbol}\n"
            f"Price: {format_vn_price(alert.price)}\n"
            f"{alert.reason}\n"
            f"Time: {self._format_ts(alert.triggered_at)}"
        )
        self._send(message)

    def send_confluence(self, row: ScanRow, signal: ConfluenceSignal, commentary: str = "") -> None:
        label = "STRONG BUY" if signal == ConfluenceSignal.BUY else "STRONG SELL"
        rsi = row.rsi.value if row.rsi.value is not None else 0.0
        vol_ratio = row.bb.vol_ratio if row.bb.vol_ratio is not None else 0.0
        lines = [
            "<b>[THREE-PATTERN CONFLUENCE]</b>",
            f"Symbol: <b>{html.escape(row.symbol)}</b> - {label}",
            f"Price: {format_vn_price(row.close)}",
            "",
            "<b>Technicals (all three confirm):</b>",
            f"- RSI: {rsi:.1f} ({row.rsi.state.value})",
            f"- EMA/MACD: {row.ema_macd.state.value}",
            f"- Bollinger: {row.bb.state.value} (Vol: {vol_ratio:.1f}x)",
        ]
        if commentary:
            lines.extend(["", f"<i>{html.escape(commentary)}</i>"])
        self._send("\n".join(lines))

    def send_strategy_signal(self, signal: StrategySignal) -> None:
        message = (
            f"<b>[{html.escape(signal.strategy)}] {html.escape(signal.signal_type)}</b>\n"
            f"Symbol: <b>{html.escape(signal.symbol)}</b>\n"
            f"Date: {signal.scan_date}\n"
            f"{html.escape(signal.message)}"
        )
        self._send(message)

    def send_scan_summary(
        self,
        *,
        symbols_total: int,
        processed: int,
        skipped: int,
        no_data: int,
        failed: int,
        signals: int,
        timed_out: bool,
    ) -> None:
        status = "TIME_LIMIT" if timed_out else "OK"
        message = (
            "MARKET SCAN SUMMARY\n"
            f"Universe: {symbols_total}\n"
            f"Processed: {processed}\n"
            f"Skipped: {skipped}\n"
            f"No Data: {no_data}\n"
            f"Failed: {failed}\n"
            f"Confluence Signals: {signals}\n"
            f"Status: {status}\n"
            f"Time: {self._format_ts(datetime.now(timezone.utc))}"
        )
        self._send(message)

    def _send(self, message: str) -> None:
        try:
            self.sink(message)
        except NotificationError:
            raise
        except Exception as exc:
            raise NotificationError(f"notification_send_failed error={exc}") from exc
        self.sent += 1
        logger.debug("notification_sent chars=%d total=%d", len(message), self.sent)

    @staticmethod
    def _format_ts(ts: datetime) -> str:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

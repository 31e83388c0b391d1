from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from .alerts import evaluate_tick
from .models import Quote
from .notifier import NotificationError, Notifier
from .storage import Storage

logger = logging.getLogger("vn_watchlist.poller")


class QuoteSource(Protocol):
    def latest_price(self, symbol: str) -> Optional[Quote]: ...


@dataclass
class PollResult:
    watchlists: int
    symbols: int
    quoted: int
    alerts: int
    cooldown_skipped: int
    failed: int


class PricePoller:
    def __init__(
        self,
        storage: Storage,
        quotes: QuoteSource,
        notifier: Notifier,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.quotes = quotes
        self.notifier = notifier
        self.now = now or (lambda: datetime.now(timezone.utc))

    def _fetch_quotes(self, symbols: list[str]) -> Dict[str, Quote]:
        prices: Dict[str, Quote] = {}
        for symbol in symbols:
            try:
                quote = self.quotes.latest_price(symbol)
            except Exception:
                logger.exception("poll_symbol symbol=%s action=quote_failed", symbol)
                continue
            if quote is None:
                logger.info("poll_symbol symbol=%s action=no_quote", symbol)
                continue
            prices[symbol] = quote
            try:
                self.storage.upsert_latest_price(quote)
            except Exception:
                logger.exception("poll_symbol symbol=%s action=price_write_failed", symbol)
        return prices

    def run_once(self) -> PollResult:
        watchlists = self.storage.list_watchlists(enabled_only=True)
        symbols = list(dict.fromkeys(w.symbol for w in watchlists))
        logger.info("poll_start watchlists=%d symbols=%d", len(watchlists), len(symbols))

        result = PollResult(
            watchlists=len(watchlists),
            symbols=len(symbols),
            quoted=0,
            alerts=0,
            cooldown_skipped=0,
            failed=0,
        )
        if not watchlists:
            return result

        prices = self._fetch_quotes(symbols)
        result.quoted = len(prices)

        for watchlist in watchlists:
            quote = prices.get(watchlist.symbol)
            if quote is None:
                continue
            try:
                prior = self.storage.get_zone_state(watchlist.id)
                transition = evaluate_tick(watchlist, quote.price, quote.ts, prior, now=self.now())
                # Alert and state commit together; notify only once both are stored.
                self.storage.record_tick(transition.state, transition.alert)
                if transition.alert is not None:
                    result.alerts += 1
                    logger.info(
                        "poll_watchlist id=%s symbol=%s action=alert price=%s",
                        watchlist.id,
                        watchlist.symbol,
                        quote.price,
                    )
                    try:
                        self.notifier.send_zone_alert(transition.alert)
                    except NotificationError as exc:
                        logger.error("poll_watchlist id=%s action=notify_failed error=%s", watchlist.id, str(exc))
                elif transition.cooldown_blocked:
                    result.cooldown_skipped += 1
                    logger.info("poll_watchlist id=%s symbol=%s action=cooldown_active", watchlist.id, watchlist.symbol)
            except Exception:
                logger.exception("poll_watchlist id=%s symbol=%s action=failed", watchlist.id, watchlist.symbol)
                result.failed += 1

        logger.info(
            "poll_end watchlists=%d quoted=%d alerts=%d cooldown_skipped=%d failed=%d",
            result.watchlists,
            result.quoted,
            result.alerts,
            result.cooldown_skipped,
            result.failed,
        )
        return result

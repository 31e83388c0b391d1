from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .constants import SECONDS_PER_MINUTE
from .models import AlertEvent, Watchlist, WatchlistZoneState, ZoneTransition


def is_in_zone(price: float, buy_min: Optional[float], buy_max: Optional[float]) -> bool:
    if buy_min is None and buy_max is None:
        return False
    if buy_min is not None and price < buy_min:
        return False
    if buy_max is not None and price > buy_max:
        return False
    return True


def should_trigger_alert(
    price: float,
    watchlist: Watchlist,
    prior_state: Optional[WatchlistZoneState],
) -> bool:
    if not is_in_zone(price, watchlist.buy_min, watchlist.buy_max):
        return False
    if prior_state is None:
        return True
    return not prior_state.last_in_zone


def is_cooldown_expired(
    last_alert_at: Optional[datetime],
    cooldown_minutes: float,
    now: Optional[datetime] = None,
) -> bool:
    if last_alert_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    elapsed_minutes = (now - last_alert_at).total_seconds() / SECONDS_PER_MINUTE
    return elapsed_minutes >= cooldown_minutes


def format_money(value: float) -> str:
    return f"${value:,.2f}"


def generate_alert_reason(
    symbol: str,
    price: float,
    buy_min: Optional[float],
    buy_max: Optional[float],
) -> str:
    p = format_money(price)
    if buy_min is not None and buy_max is not None:
        return f"{symbol} entered buy zone at {p} (zone: {format_money(buy_min)} - {format_money(buy_max)})"
    if buy_min is not None:
        return f"{symbol} is above buy minimum at {p} (min: {format_money(buy_min)})"
    if buy_max is not None:
        return f"{symbol} is below buy maximum at {p} (max: {format_money(buy_max)})"
    return f"{symbol} price update: {p}"


def evaluate_tick(
    watchlist: Watchlist,
    price: float,
    ts: datetime,
    prior_state: Optional[WatchlistZoneState],
    now: Optional[datetime] = None,
) -> ZoneTransition:
    """Advance one watchlist by one price tick.

    The returned state always reflects this tick; last_alert_at only moves
    when an alert is actually produced.
    """
    now = now or datetime.now(timezone.utc)
    in_zone = is_in_zone(price, watchlist.buy_min, watchlist.buy_max)
    last_alert_at = prior_state.last_alert_at if prior_state else None

    alert: Optional[AlertEvent] = None
    cooldown_blocked = False
    if should_trigger_alert(price, watchlist, prior_state):
        if is_cooldown_expired(last_alert_at, watchlist.cooldown_minutes, now):
            alert = AlertEvent(
                symbol=watchlist.symbol,
                price=price,
                reason=generate_alert_reason(watchlist.symbol, price, watchlist.buy_min, watchlist.buy_max),
                triggered_at=now,
                watchlist_id=watchlist.id,
                user_id=watchlist.user_id,
            )
            last_alert_at = now
        else:
            cooldown_blocked = True

    state = WatchlistZoneState(
        watchlist_id=watchlist.id,
        last_in_zone=in_zone,
        last_price=price,
        last_ts=ts,
        last_alert_at=last_alert_at,
    )
    return ZoneTransition(state=state, alert=alert, in_zone=in_zone, cooldown_blocked=cooldown_blocked)

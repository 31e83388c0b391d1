from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger("vn_watchlist.scheduler")


def next_run_at(now: datetime, interval: timedelta) -> datetime:
    """Next slot on the interval grid anchored at UTC midnight."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    step = interval.total_seconds()
    elapsed = (now - midnight).total_seconds()
    slots = int(elapsed // step) + 1
    return midnight + timedelta(seconds=slots * step)


def sleep_until(target: datetime, sleep: Callable[[float], None] = time.sleep) -> None:
    now = datetime.now(timezone.utc)
    delay = max(0.0, (target - now).total_seconds())
    if delay:
        logger.info(
            "scheduler_waiting next_run_utc=%s wait_seconds=%d",
            target.strftime("%Y-%m-%d %H:%M:%S"),
            int(delay),
        )
        sleep(delay)


def run_every(
    task: Callable[[], None],
    interval: timedelta,
    max_runs: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    logger.info("scheduler_started cadence_s=%d timezone=UTC", int(interval.total_seconds()))
    runs = 0
    while max_runs is None or runs < max_runs:
        run_at = next_run_at(datetime.now(timezone.utc), interval)
        sleep_until(run_at, sleep)
        logger.info("scheduler_trigger run_at_utc=%s", run_at.strftime("%Y-%m-%d %H:%M:%S"))
        try:
            task()
        except Exception:
            logger.exception("scheduler_task_failed")
        runs += 1
    return runs

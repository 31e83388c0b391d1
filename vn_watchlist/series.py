from __future__ import annotations

import math
from typing import Optional, Sequence

from .models import Series


def sma(values: Sequence[float], period: int) -> Series:
    out: Series = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out

    total = 0.0
    for i in range(period):
        total += values[i]
    out[period - 1] = total / period

    for i in range(period, len(values)):
        total = total - values[i - period] + values[i]
        out[i] = total / period
    return out


def ema(values: Sequence[float], period: int) -> Series:
    out: Series = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out

    alpha = 2.0 / (period + 1.0)
    total = 0.0
    for i in range(period):
        total += values[i]
    prev = total / period
    out[period - 1] = prev

    for i in range(period, len(values)):
        prev = values[i] * alpha + prev * (1.0 - alpha)
        out[i] = prev
    return out


def wilder_smooth(prev: float, sample: float, period: int) -> float:
    return (prev * (period - 1) + sample) / period


def rolling_stddev(values: Sequence[float], period: int, means: Series) -> Series:
    """Population standard deviation over each SMA window."""
    out: Series = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out

    for i in range(period - 1, len(values)):
        mean = means[i]
        if mean is None:
            continue
        sq = 0.0
        for j in range(i - period + 1, i + 1):
            sq += (values[j] - mean) ** 2
        out[i] = math.sqrt(sq / period)
    return out


def value_at(series: Series, index: int) -> Optional[float]:
    if index < 0 or index >= len(series):
        return None
    return series[index]


def round2(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(value, 2)

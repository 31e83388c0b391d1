from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any

import yaml

from .constants import (
    BB_ADX_MIN,
    BB_PERIOD,
    BB_STD_MULT,
    BB_VOL_RATIO_MIN,
    DEFAULT_COOLDOWN_MINUTES,
    EMA_TREND_PERIOD,
    MACD_FAST,
    MACD_SIGNAL,
    MACD_SLOW,
    RSI_NEAR_OVERBOUGHT_FROM,
    RSI_NEAR_OVERSOLD_TO,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    RSI_PERIOD,
)
from .models import BreakoutParams, Config, RSISettings

ENV_OVERRIDES = {
    "db_path": "VNWATCH_DB_PATH",
    "log_level": "VNWATCH_LOG_LEVEL",
    "candles_path": "VNWATCH_CANDLES_PATH",
    "quotes_path": "VNWATCH_QUOTES_PATH",
}


def load_config(path: str) -> Config:
    raw: dict[str, Any] = {}
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    rsi = raw.get("rsi", {})
    ema_macd = raw.get("ema_macd", {})
    bollinger = raw.get("bollinger", {})
    scanner = raw.get("scanner", {})
    poller = raw.get("poller", {})

    cfg = Config(
        rsi=RSISettings(
            period=int(rsi.get("period", RSI_PERIOD)),
            overbought=float(rsi.get("overbought", RSI_OVERBOUGHT)),
            oversold=float(rsi.get("oversold", RSI_OVERSOLD)),
            near_overbought_from=float(rsi.get("near_overbought_from", RSI_NEAR_OVERBOUGHT_FROM)),
            near_oversold_to=float(rsi.get("near_oversold_to", RSI_NEAR_OVERSOLD_TO)),
        ),
        breakout=BreakoutParams(
            bb_period=int(bollinger.get("period", BB_PERIOD)),
            bb_std_mult=float(bollinger.get("std_mult", BB_STD_MULT)),
            vol_ratio_min=float(bollinger.get("vol_ratio_min", BB_VOL_RATIO_MIN)),
            adx_min=float(bollinger.get("adx_min", BB_ADX_MIN)),
            require_adx_rising=bool(bollinger.get("require_adx_rising", True)),
        ),
        ema_period=int(ema_macd.get("ema_period", EMA_TREND_PERIOD)),
        macd_fast=int(ema_macd.get("fast", MACD_FAST)),
        macd_slow=int(ema_macd.get("slow", MACD_SLOW)),
        macd_signal=int(ema_macd.get("signal", MACD_SIGNAL)),
        history_days=int(scanner.get("history_days", 250)),
        min_history=int(scanner.get("min_history", 20)),
        max_runtime_s=float(scanner.get("max_runtime_s", 280)),
        symbols_file=str(scanner.get("symbols_file", "")),
        symbol_cache_ttl_s=float(scanner.get("symbol_cache_ttl_s", 3600)),
        poll_interval_minutes=int(poller.get("interval_minutes", 5)),
        default_cooldown_minutes=int(poller.get("default_cooldown_minutes", DEFAULT_COOLDOWN_MINUTES)),
        db_path=str(raw.get("db_path", "vn_watchlist.db")),
        candles_path=str(raw.get("candles_path", "")),
        quotes_path=str(raw.get("quotes_path", "")),
        log_level=str(raw.get("log_level", "INFO")),
    )

    for attr, env_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            setattr(cfg, attr, value)

    return cfg


def to_dict(cfg: Config) -> dict[str, Any]:
    return asdict(cfg)

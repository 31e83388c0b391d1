from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from .constants import STRATEGY_RSI

Series = List[Optional[float]]


class RSIState(str, Enum):
    OVERSOLD = "OVERSOLD"
    OVERBOUGHT = "OVERBOUGHT"
    NEUTRAL = "NEUTRAL"


class NearFlag(str, Enum):
    NEAR_OVERSOLD = "NEAR_OVERSOLD"
    NEAR_OVERBOUGHT = "NEAR_OVERBOUGHT"
    NONE = "NONE"


class TrendMomentumState(str, Enum):
    BUY = "EMA200_MACD_BUY"
    SELL = "EMA200_MACD_SELL"
    BULL_NO_SIGNAL = "EMA200_MACD_BULL_NO_SIGNAL"
    BEAR = "EMA200_MACD_BEAR"


class MACDCross(str, Enum):
    CROSS_UP = "cross_up"
    CROSS_DOWN = "cross_down"
    NONE = "none"


class BreakoutState(str, Enum):
    BREAKOUT_BUY = "BB_BREAKOUT_BUY"
    BREAKOUT_EXIT = "BB_BREAKOUT_EXIT"
    BREAKOUT_WEAK = "BB_BREAKOUT_WEAK"
    NEUTRAL = "BB_NEUTRAL"


class Trend(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    NEUTRAL = "NEUTRAL"


class Setup(str, Enum):
    PULLBACK = "PULLBACK"
    BREAKOUT = "BREAKOUT"
    NONE = "NONE"


class Recommendation(str, Enum):
    BUY_PULLBACK = "BUY_PULLBACK"
    BUY_BREAKOUT = "BUY_BREAKOUT"
    WAIT = "WAIT"
    NO_TRADE = "NO_TRADE"


class ConfluenceSignal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Candle:
    ts: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    ts: datetime


@dataclass(frozen=True)
class RSISettings:
    period: int = 14
    overbought: float = 70.0
    oversold: float = 30.0
    near_overbought_from: float = 65.0
    near_oversold_to: float = 35.0


@dataclass(frozen=True)
class BreakoutParams:
    bb_period: int = 20
    bb_std_mult: float = 2.0
    vol_ratio_min: float = 1.3
    adx_min: float = 20.0
    require_adx_rising: bool = True


@dataclass(frozen=True)
class RSIResult:
    value: Optional[float]
    slope_5: Optional[float]
    state: RSIState
    near_flag: NearFlag
    distance_to_30: Optional[float]
    distance_to_70: Optional[float]


@dataclass(frozen=True)
class MACDResult:
    macd: Series
    signal: Series
    histogram: Series


@dataclass(frozen=True)
class EMAMACDAnalysis:
    ema200: Optional[float]
    distance_to_ema200_pct: Optional[float]
    macd: Optional[float]
    macd_signal: Optional[float]
    macd_hist: Optional[float]
    macd_cross: MACDCross
    state: TrendMomentumState
    sell_reason: Optional[str] = None


@dataclass(frozen=True)
class BollingerBands:
    mid: Series
    upper: Series
    lower: Series


@dataclass(frozen=True)
class ADXResult:
    adx: Series
    plus_di: Series
    minus_di: Series


@dataclass(frozen=True)
class BBBreakoutAnalysis:
    mid: Optional[float]
    upper: Optional[float]
    lower: Optional[float]
    bandwidth_pct: Optional[float]
    vol_ma20: Optional[float]
    vol_ratio: Optional[float]
    adx14: Optional[float]
    plus_di14: Optional[float]
    minus_di14: Optional[float]
    state: BreakoutState


@dataclass(frozen=True)
class MediumTermMetrics:
    price: float
    ema20: float
    ema50: float
    ema200: float
    rsi: float
    vol: float
    vol_ma20: float


@dataclass
class MediumTermResult:
    symbol: str
    trend: Trend
    setup: Setup
    recommendation: Recommendation
    stop_loss: Optional[float]
    target: Optional[float]
    confidence: int
    details: List[str] = field(default_factory=list)
    metrics: Optional[MediumTermMetrics] = None


@dataclass(frozen=True)
class Watchlist:
    id: str
    user_id: str
    symbol: str
    buy_min: Optional[float]
    buy_max: Optional[float]
    enabled: bool
    cooldown_minutes: int
    created_at: datetime


@dataclass
class WatchlistZoneState:
    watchlist_id: str
    last_in_zone: bool
    last_price: Optional[float]
    last_ts: Optional[datetime]
    last_alert_at: Optional[datetime]


@dataclass(frozen=True)
class AlertEvent:
    symbol: str
    price: float
    reason: str
    triggered_at: datetime
    watchlist_id: str = ""
    user_id: str = ""


@dataclass(frozen=True)
class ZoneTransition:
    state: WatchlistZoneState
    alert: Optional[AlertEvent]
    in_zone: bool
    cooldown_blocked: bool = False


@dataclass(frozen=True)
class ScanRow:
    symbol: str
    close: float
    vol: float
    rsi: RSIResult
    ema_macd: EMAMACDAnalysis
    bb: BBBreakoutAnalysis
    scan_date: str = ""


@dataclass(frozen=True)
class StrategySignal:
    user_id: str
    symbol: str
    scan_date: str
    strategy: str
    signal_type: str
    state: str
    message: str
    values: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> str:
        label = self.signal_type
        if self.strategy == STRATEGY_RSI:
            label = self.state
        elif self.state == BreakoutState.BREAKOUT_WEAK.value:
            label = "WEAK"
        return f"{self.user_id}-{self.symbol}-{self.scan_date}-{self.strategy}-{label}"


@dataclass
class UserScanSettings:
    user_id: str = ""
    overbought: float = 70.0
    oversold: float = 30.0
    enable_ema200_macd: bool = True
    enable_bb_breakout: bool = True


@dataclass
class Config:
    rsi: RSISettings
    breakout: BreakoutParams
    ema_period: int
    macd_fast: int
    macd_slow: int
    macd_signal: int
    history_days: int
    min_history: int
    max_runtime_s: float
    symbols_file: str
    symbol_cache_ttl_s: float
    poll_interval_minutes: int
    default_cooldown_minutes: int
    db_path: str
    candles_path: str
    quotes_path: str
    log_level: str

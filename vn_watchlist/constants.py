from __future__ import annotations

SECONDS_PER_MINUTE = 60
SECONDS_PER_DAY = 86400

RSI_PERIOD = 14
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
RSI_NEAR_OVERBOUGHT_FROM = 65.0
RSI_NEAR_OVERSOLD_TO = 35.0
RSI_SLOPE_LOOKBACK = 5
RSI_MIDLINE = 50.0

EMA_TREND_PERIOD = 200
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9

BB_PERIOD = 20
BB_STD_MULT = 2.0
BB_VOL_RATIO_MIN = 1.3
BB_ADX_MIN = 20.0
ADX_PERIOD = 14
VOLUME_MA_PERIOD = 20

MEDIUM_TERM_MIN_CANDLES = 200
PULLBACK_RSI_MIN = 40.0
PULLBACK_STOP_BUFFER = 0.99
PULLBACK_CONFIDENCE = 80
BREAKOUT_CONFIDENCE = 75
CONSOLIDATION_LEN = 20
CONSOLIDATION_MAX_RANGE = 0.15
REWARD_MULTIPLE = 2.0
MAX_RISK_PCT = 12.0

DEFAULT_COOLDOWN_MINUTES = 60
LIQUIDITY_LOOKBACK = 5

STRATEGY_RSI = "RSI"
STRATEGY_EMA200_MACD = "EMA200_MACD"
STRATEGY_BB_BREAKOUT = "BB_BREAKOUT"

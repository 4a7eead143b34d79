from enum import Enum

class Direction(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

class Session(Enum):
    SYDNEY = "Sydney"
    TOKYO = "Tokyo"
    LONDON = "London"
    NEW_YORK = "New York"

class VolatilityTier(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

class TrendStrength(Enum):
    WEAK = "WEAK"
    MODERATE = "MODERATE"
    STRONG = "STRONG"

class Trend(Enum):
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    SIDEWAYS = "sideways"

class MarketStructure(Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    RANGING = "RANGING"

class PatternCategory(Enum):
    CONTINUATION = "trend-continuation"
    REVERSAL = "reversal"
    INDECISION = "indecision"

class Polarity(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

class Status(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

class CloseReason(Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    TIME_EXPIRED = "TIME_EXPIRED"
    AI_INTELLIGENT_EXIT = "AI_INTELLIGENT_EXIT"
    MANUAL_CLOSE = "MANUAL_CLOSE"

class VolumeSignal(Enum):
    HIGH = "HIGH"
    LOW = "LOW"
    NEUTRAL = "NEUTRAL"

from enum import Enum

class ReportCategory(str, Enum):
    INVESTMENT_STRATEGY = "investment_strategy"  # Market / strategy outlook reports
    INDUSTRY_ANALYSIS = "industry_analysis"      # Sector reports, input to industry evaluation

class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"

class KeywordImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

class DataStatus(str, Enum):
    OK = "ok"
    NO_DATA = "no_data"   # Artifact absent
    STALE = "stale"       # Served from a cache that could not be refreshed

class SyncStage(str, Enum):
    IDLE = "idle"
    CHECK_FRESHNESS = "check_freshness"
    DISCOVER = "discover"
    DEDUP_APPEND = "dedup_append"
    CONVERT_PENDING = "convert_pending"
    DONE = "done"

class EvaluationStage(str, Enum):
    CLASSIFY = "classify"
    GROUP = "group"
    EVALUATE = "evaluate"
    SCORE = "score"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"

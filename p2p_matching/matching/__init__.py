"""Matching engine module exports."""

from p2p_matching.matching.config import (
    MatchingConfig,
    ScoringConfig,
    RiskConfig,
    SettlementConfig,
    RankingConfig,
    QueueConfig,
)

from p2p_matching.matching.models import (
    RequestType,
    PaymentMethod,
    RequestStatus,
    RequestPriority,
    PaymentDetails,
    GeoLocation,
    PaymentRequest,
    RiskAssessment,
    MatchingCandidate,
    SearchMetadata,
    MatchingResult,
    Queue,
    QueueOptimization,
    QueueMatchProposal,
    MatchRecord,
    MatchingForecast,
)

from p2p_matching.matching.rules import (
    MatchingRule,
    MatchingScoring,
    RuleSet,
    default_rule_set,
    parse_condition,
)

from p2p_matching.matching.providers import (
    RiskProvider,
    GeoComparator,
    SuspiciousPatternCheck,
    PatternAnalyzer,
    StaticRiskProvider,
    NullGeoComparator,
    RegionGeoComparator,
    NoSuspiciousPatterns,
    BlocklistPatternCheck,
    ProviderError,
    ProviderTimeoutError,
)

from p2p_matching.matching.scorer import estimate_settlement_time

from p2p_matching.matching.forecast import (
    HistoricalPatterns,
    StaticPatternAnalyzer,
    HistoryPatternAnalyzer,
    PredictiveAnalyzer,
)

from p2p_matching.matching.engine import (
    MatchingEngine,
    InvalidRequestError,
    find_matches,
)

from p2p_matching.matching.metrics import (
    MatchingMetrics,
    get_metrics,
    reset_metrics,
)

__all__ = [
    # Config
    "MatchingConfig",
    "ScoringConfig",
    "RiskConfig",
    "SettlementConfig",
    "RankingConfig",
    "QueueConfig",
    # Models
    "RequestType",
    "PaymentMethod",
    "RequestStatus",
    "RequestPriority",
    "PaymentDetails",
    "GeoLocation",
    "PaymentRequest",
    "RiskAssessment",
    "MatchingCandidate",
    "SearchMetadata",
    "MatchingResult",
    "Queue",
    "QueueOptimization",
    "QueueMatchProposal",
    "MatchRecord",
    "MatchingForecast",
    # Rules
    "MatchingRule",
    "MatchingScoring",
    "RuleSet",
    "default_rule_set",
    "parse_condition",
    # Collaborators
    "RiskProvider",
    "GeoComparator",
    "SuspiciousPatternCheck",
    "PatternAnalyzer",
    "StaticRiskProvider",
    "NullGeoComparator",
    "RegionGeoComparator",
    "NoSuspiciousPatterns",
    "BlocklistPatternCheck",
    "ProviderError",
    "ProviderTimeoutError",
    # Scoring
    "estimate_settlement_time",
    # Forecasting
    "HistoricalPatterns",
    "StaticPatternAnalyzer",
    "HistoryPatternAnalyzer",
    "PredictiveAnalyzer",
    # Engine
    "MatchingEngine",
    "InvalidRequestError",
    "find_matches",
    # Metrics
    "MatchingMetrics",
    "get_metrics",
    "reset_metrics",
]

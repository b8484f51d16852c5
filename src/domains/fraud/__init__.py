"""Fraud/risk decision engine."""

from .alerts import AlertManager, AlertPublisher, KafkaAlertPublisher
from .analytics import AlertAnalytics, summarize
from .conditions import parse_conditions, rule_matches
from .errors import (
    ConflictError,
    EvaluationFault,
    FraudEngineError,
    NotFoundError,
    ValidationError,
)
from .facts import FactLookup, SqlFactLookup
from .models import (
    AlertStatus,
    AlertType,
    AnalyticsSummary,
    ConditionKind,
    FraudAction,
    FraudAlert,
    Rule,
    RuleCreate,
    RuleType,
    RuleUpdate,
    ScoringResult,
)
from .rule_store import RuleStore
from .rules_engine import RulesEngine
from .scorer import FraudScorer

__all__ = [
    "AlertAnalytics",
    "AlertManager",
    "AlertPublisher",
    "AlertStatus",
    "AlertType",
    "AnalyticsSummary",
    "ConditionKind",
    "ConflictError",
    "EvaluationFault",
    "FactLookup",
    "FraudAction",
    "FraudAlert",
    "FraudEngineError",
    "FraudScorer",
    "KafkaAlertPublisher",
    "NotFoundError",
    "Rule",
    "RuleCreate",
    "RuleStore",
    "RuleType",
    "RuleUpdate",
    "RulesEngine",
    "ScoringResult",
    "SqlFactLookup",
    "ValidationError",
    "parse_conditions",
    "rule_matches",
    "summarize",
]

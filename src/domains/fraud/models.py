"""Pydantic models and enums for the fraud domain."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, Field

from .errors import ValidationError


class RuleType(StrEnum):
    ORDER = "order"
    PAYMENT = "payment"
    ACCOUNT = "account"


class FraudAction(StrEnum):
    FLAG = "flag"
    BLOCK = "block"
    REVIEW = "review"


class AlertType(StrEnum):
    ORDER = "order"
    PAYMENT = "payment"
    ACCOUNT = "account"


class AlertStatus(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"
    DISMISSED = "dismissed"


TERMINAL_STATUSES = frozenset(
    {AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE, AlertStatus.DISMISSED}
)


class Lifecycle(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ConditionKind(StrEnum):
    MAX_ORDER_AMOUNT = "max_order_amount"
    MAX_ITEMS = "max_items"
    MAX_PAYMENT_AMOUNT = "max_payment_amount"
    MAX_ORDERS_FOR_NEW_ACCOUNT = "max_orders_for_new_account"


E = TypeVar("E", bound=StrEnum)


def parse_enum(enum_cls: type[E], value: Any, field_name: str) -> E:
    """Parse a boundary string into an enum member, rejecting unknown values."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"Invalid {field_name}: {value!r} (expected one of: {allowed})")


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


# Thresholds must be finite; NaN and infinity cannot be stored as JSON
Threshold = Annotated[float, Field(allow_inf_nan=False)]


class Condition(BaseModel):
    """One typed threshold predicate of a rule."""

    kind: ConditionKind
    threshold: float


class Rule(BaseModel):
    rule_id: str
    name: str
    rule_type: RuleType
    # Stored JSON, parsed into Condition objects at evaluation time
    conditions: Any = Field(default_factory=dict)
    risk_score: int
    action: FraudAction = FraudAction.FLAG
    priority: int = 0
    is_active: bool = True
    description: str | None = None
    lifecycle: Lifecycle = Lifecycle.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RuleCreate(BaseModel):
    name: str
    rule_type: RuleType
    conditions: dict[ConditionKind, Threshold] = Field(default_factory=dict)
    risk_score: int
    action: FraudAction = FraudAction.FLAG
    priority: int = 0
    description: str | None = None
    is_active: bool = True


class RuleUpdate(BaseModel):
    """Partial rule update; only fields explicitly set are applied."""

    name: str | None = None
    rule_type: RuleType | None = None
    conditions: dict[ConditionKind, Threshold] | None = None
    risk_score: int | None = None
    action: FraudAction | None = None
    priority: int | None = None
    description: str | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Fact snapshots
# ---------------------------------------------------------------------------


class OrderFacts(BaseModel):
    order_id: str
    user_id: str | None = None
    total_amount: float
    item_count: int


class PaymentFacts(BaseModel):
    payment_id: str
    order_id: str | None = None
    user_id: str | None = None
    amount: float


class AccountFacts(BaseModel):
    user_id: str
    account_age_days: int | None = None
    order_count: int | None = None


SubjectFacts = OrderFacts | PaymentFacts | AccountFacts


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class RuleResult(BaseModel):
    rule_id: str
    rule_name: str
    triggered: bool
    score: int = 0
    details: str = ""


class ScoringResult(BaseModel):
    risk_score: int = Field(ge=0)
    matched_rule_ids: list[str] = []
    rule_results: list[RuleResult] = []


# ---------------------------------------------------------------------------
# Alerts and analytics
# ---------------------------------------------------------------------------


class FraudAlert(BaseModel):
    alert_id: str
    user_id: str | None = None
    alert_type: AlertType
    risk_score: int
    reason: str
    order_id: str | None = None
    payment_id: str | None = None
    matched_rules: list[str] = []
    status: AlertStatus = AlertStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    notes: str | None = None
    created_at: datetime


class HighRiskAlert(BaseModel):
    alert_id: str
    alert_type: AlertType
    risk_score: int
    status: AlertStatus
    created_at: datetime


class AnalyticsSummary(BaseModel):
    start: datetime
    end: datetime
    total_alerts: int = 0
    pending_count: int = 0
    resolved_count: int = 0
    false_positive_count: int = 0
    dismissed_count: int = 0
    average_risk_score: float = 0.0
    alerts_by_type: dict[str, int] = Field(default_factory=dict)
    alerts_by_status: dict[str, int] = Field(default_factory=dict)
    high_risk_alerts: list[HighRiskAlert] = []

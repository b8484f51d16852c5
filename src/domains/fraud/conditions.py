"""Condition evaluation: decides whether one rule matches one fact snapshot.

Stored rule conditions are a JSON object of ``{condition_kind: threshold}``.
They are parsed into typed :class:`Condition` values here and evaluated as
strict ``fact > threshold`` comparisons. A rule matches when ANY of its
recognised conditions is satisfied.
"""

import json
import math
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from .config import FraudConfig, default_config
from .errors import EvaluationFault
from .models import (
    AccountFacts,
    Condition,
    ConditionKind,
    OrderFacts,
    PaymentFacts,
    Rule,
    SubjectFacts,
)

logger = structlog.get_logger()


def parse_conditions(raw: Any, rule_id: str | None = None) -> list[Condition]:
    """Parse stored conditions into typed conditions, in stored key order.

    Unrecognised condition names are skipped. Raises EvaluationFault when the
    payload is not an object or a recognised threshold is not a non-negative
    number.
    """
    if raw is None or raw == "":
        return []

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise EvaluationFault(f"conditions are not valid JSON: {exc}", rule_id) from exc

    if not isinstance(raw, Mapping):
        raise EvaluationFault(
            f"conditions must be an object, got {type(raw).__name__}", rule_id
        )

    conditions: list[Condition] = []
    for key, value in raw.items():
        try:
            kind = ConditionKind(str(key))
        except ValueError:
            # Forward-compatible: names this engine does not know are ignored
            continue

        if isinstance(value, bool):
            raise EvaluationFault(f"threshold for {kind.value} must be numeric", rule_id)
        try:
            threshold = float(value)
        except (TypeError, ValueError) as exc:
            raise EvaluationFault(
                f"threshold for {kind.value} must be numeric, got {value!r}", rule_id
            ) from exc
        if not math.isfinite(threshold) or threshold < 0:
            raise EvaluationFault(
                f"threshold for {kind.value} must be finite and non-negative, got {value!r}",
                rule_id,
            )

        conditions.append(Condition(kind=kind, threshold=threshold))

    return conditions


def _order_amount(facts: SubjectFacts, config: FraudConfig) -> float | None:
    return facts.total_amount if isinstance(facts, OrderFacts) else None


def _order_items(facts: SubjectFacts, config: FraudConfig) -> float | None:
    return facts.item_count if isinstance(facts, OrderFacts) else None


def _payment_amount(facts: SubjectFacts, config: FraudConfig) -> float | None:
    return facts.amount if isinstance(facts, PaymentFacts) else None


def _new_account_orders(facts: SubjectFacts, config: FraudConfig) -> float | None:
    if not isinstance(facts, AccountFacts):
        return None
    if facts.account_age_days is None or facts.order_count is None:
        return None
    # Only accounts younger than the check window are subject to this limit
    if facts.account_age_days >= config.scoring.new_account_check_days:
        return None
    return facts.order_count


# Every ConditionKind must have an extractor; checked at import time below.
_FACT_EXTRACTORS: dict[ConditionKind, Callable[[SubjectFacts, FraudConfig], float | None]] = {
    ConditionKind.MAX_ORDER_AMOUNT: _order_amount,
    ConditionKind.MAX_ITEMS: _order_items,
    ConditionKind.MAX_PAYMENT_AMOUNT: _payment_amount,
    ConditionKind.MAX_ORDERS_FOR_NEW_ACCOUNT: _new_account_orders,
}

_missing = set(ConditionKind) - set(_FACT_EXTRACTORS)
if _missing:
    raise RuntimeError(f"No fact extractor for condition kinds: {sorted(_missing)}")


def condition_satisfied(
    condition: Condition,
    facts: SubjectFacts,
    config: FraudConfig | None = None,
) -> bool:
    """Return True when the subject's fact strictly exceeds the threshold.

    A missing fact (or a fact belonging to another subject type) is treated
    as not satisfied.
    """
    cfg = config or default_config
    value = _FACT_EXTRACTORS[condition.kind](facts, cfg)
    if value is None:
        return False
    return value > condition.threshold


def rule_matches(
    rule: Rule,
    facts: SubjectFacts,
    config: FraudConfig | None = None,
) -> bool:
    """Decide whether a rule matches a subject. Never raises on bad conditions."""
    cfg = config or default_config

    try:
        conditions = parse_conditions(rule.conditions, rule_id=rule.rule_id)
    except EvaluationFault as fault:
        logger.error(
            "rule_conditions_unparsable",
            rule_id=rule.rule_id,
            rule_name=rule.name,
            error=str(fault),
        )
        return False

    if not conditions:
        return False

    return any(condition_satisfied(c, facts, cfg) for c in conditions)

"""Rule-based risk scoring with additive aggregation and a clamped ceiling."""

from collections.abc import Iterable

import structlog

from .conditions import rule_matches
from .config import FraudConfig, default_config
from .models import Lifecycle, Rule, RuleResult, ScoringResult, SubjectFacts

logger = structlog.get_logger()


def order_rules(rules: Iterable[Rule]) -> list[Rule]:
    """Priority descending, then name ascending."""
    return sorted(rules, key=lambda r: (-r.priority, r.name))


def clamp_score(total: int, max_risk_score: int) -> int:
    return max(0, min(total, max_risk_score))


class RulesEngine:
    """Evaluates a fact snapshot against a set of rules.

    Scoring:
    1. Skip inactive or archived rules
    2. Evaluate rules in priority order -> list[RuleResult]
    3. Sum risk_score of every matching rule (full contribution, no partial credit)
    4. Clamp the sum to [0, max_risk_score]

    The result is a pure function of (rules, facts, config).
    """

    def __init__(self, config: FraudConfig | None = None) -> None:
        self._config = config or default_config

    def evaluate(
        self,
        rules: Iterable[Rule],
        facts: SubjectFacts,
        config: FraudConfig | None = None,
    ) -> ScoringResult:
        cfg = config or self._config
        results: list[RuleResult] = []

        for rule in order_rules(rules):
            if not rule.is_active or rule.lifecycle != Lifecycle.ACTIVE:
                continue
            try:
                matched = rule_matches(rule, facts, cfg)
            except Exception:
                logger.exception("rule_evaluation_error", rule_id=rule.rule_id)
                results.append(
                    RuleResult(
                        rule_id=rule.rule_id,
                        rule_name=rule.name,
                        triggered=False,
                        details="Rule evaluation failed",
                    )
                )
                continue

            results.append(
                RuleResult(
                    rule_id=rule.rule_id,
                    rule_name=rule.name,
                    triggered=matched,
                    score=rule.risk_score if matched else 0,
                )
            )

        triggered = [r for r in results if r.triggered]
        raw_total = sum(r.score for r in triggered)
        risk_score = clamp_score(raw_total, cfg.scoring.max_risk_score)

        logger.info(
            "rules_evaluated",
            rule_count=len(results),
            triggered_count=len(triggered),
            raw_score=raw_total,
            risk_score=risk_score,
        )

        return ScoringResult(
            risk_score=risk_score,
            matched_rule_ids=[r.rule_id for r in triggered],
            rule_results=results,
        )

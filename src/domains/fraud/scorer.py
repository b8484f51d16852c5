"""Fraud evaluation pipeline: facts -> active rules -> score -> alert."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .alerts import AlertManager, AlertPublisher
from .config import FraudConfig, default_config
from .facts import FactLookup, SqlFactLookup
from .models import AlertType, FraudAlert, RuleResult, RuleType, ScoringResult, SubjectFacts
from .rule_store import RuleStore
from .rules_engine import RulesEngine

logger = structlog.get_logger()


def build_reason(subject: str, scoring: ScoringResult) -> str:
    reason = f"{subject} evaluation: risk score {scoring.risk_score}"
    matched: list[RuleResult] = [r for r in scoring.rule_results if r.triggered]
    if matched:
        reason += f" (matched: {', '.join(r.rule_name for r in matched)})"
    return reason


class FraudScorer:
    """Orchestrates one evaluation pass per subject.

    Facts are loaded before anything is written, so a missing subject aborts
    the call with NotFoundError and no alert row is created. Rule reads are
    not transactionally tied to rule writes: an edit that lands mid-evaluation
    may or may not be seen by that evaluation.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: FraudConfig | None = None,
        facts: FactLookup | None = None,
        publisher: AlertPublisher | None = None,
    ) -> None:
        self._config = config or default_config
        self._facts = facts or SqlFactLookup(session)
        self._rules = RuleStore(session, config=self._config)
        self._rules_engine = RulesEngine(config=self._config)
        self._alerts = AlertManager(session, config=self._config, publisher=publisher)

    async def score(self, rule_type: RuleType, facts: SubjectFacts) -> ScoringResult:
        """Score a fact snapshot against the active rules of one type."""
        rules = await self._rules.active_rules(rule_type)
        return self._rules_engine.evaluate(rules, facts, self._config)

    async def evaluate_order(self, order_id: str) -> FraudAlert:
        facts = await self._facts.order_facts(order_id)
        scoring = await self.score(RuleType.ORDER, facts)
        alert = await self._alerts.raise_alert(
            AlertType.ORDER,
            scoring.risk_score,
            build_reason("Order", scoring),
            scoring.matched_rule_ids,
            user_id=facts.user_id,
            order_id=order_id,
        )
        self._log_evaluated(alert, scoring)
        return alert

    async def evaluate_payment(self, payment_id: str) -> FraudAlert:
        facts = await self._facts.payment_facts(payment_id)
        scoring = await self.score(RuleType.PAYMENT, facts)
        alert = await self._alerts.raise_alert(
            AlertType.PAYMENT,
            scoring.risk_score,
            build_reason("Payment", scoring),
            scoring.matched_rule_ids,
            user_id=facts.user_id,
            payment_id=payment_id,
        )
        self._log_evaluated(alert, scoring)
        return alert

    async def evaluate_account(self, user_id: str) -> FraudAlert:
        facts = await self._facts.account_facts(user_id)
        scoring = await self.score(RuleType.ACCOUNT, facts)
        alert = await self._alerts.raise_alert(
            AlertType.ACCOUNT,
            scoring.risk_score,
            build_reason("Account", scoring),
            scoring.matched_rule_ids,
            user_id=user_id,
        )
        self._log_evaluated(alert, scoring)
        return alert

    def _log_evaluated(self, alert: FraudAlert, scoring: ScoringResult) -> None:
        logger.info(
            "subject_evaluated",
            alert_id=alert.alert_id,
            alert_type=alert.alert_type.value,
            order_id=alert.order_id,
            payment_id=alert.payment_id,
            user_id=alert.user_id,
            risk_score=scoring.risk_score,
            triggered_count=len(scoring.matched_rule_ids),
        )

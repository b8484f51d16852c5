"""Fraud alert lifecycle: creation, listing, review, and event publishing."""

import json
import uuid
from datetime import UTC, datetime
from typing import Protocol

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import FraudAlert as FraudAlertDB

from .config import FraudConfig, default_config
from .errors import NotFoundError, ValidationError
from .models import TERMINAL_STATUSES, AlertStatus, AlertType, FraudAlert, parse_enum

logger = structlog.get_logger()

ALERT_RAISED = "fraud_alert_raised"
ALERT_REVIEWED = "fraud_alert_reviewed"


def to_alert(row: FraudAlertDB) -> FraudAlert:
    return FraudAlert(
        alert_id=row.alert_id,
        user_id=row.user_id,
        alert_type=parse_enum(AlertType, row.alert_type, "alert_type"),
        risk_score=row.risk_score,
        reason=row.reason,
        order_id=row.order_id,
        payment_id=row.payment_id,
        matched_rules=list(row.matched_rules or []),
        status=parse_enum(AlertStatus, row.status, "status"),
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        notes=row.notes,
        created_at=row.created_at,
    )


def _alert_filters(
    status: AlertStatus | None,
    alert_type: AlertType | None,
    min_risk_score: int | None,
) -> list:
    filters = []
    if status is not None:
        filters.append(FraudAlertDB.status == status.value)
    if alert_type is not None:
        filters.append(FraudAlertDB.alert_type == alert_type.value)
    if min_risk_score is not None:
        filters.append(FraudAlertDB.risk_score >= min_risk_score)
    return filters


class AlertPublisher(Protocol):
    """Outbound hook invoked after an alert is persisted or transitioned."""

    async def publish(self, event_type: str, alert: FraudAlert) -> None: ...


class KafkaAlertPublisher:
    """Publishes alert events to Kafka for downstream consumers.

    Args:
        producer: A started aiokafka AIOKafkaProducer instance.
        topic: Destination topic.
    """

    def __init__(self, producer, topic: str = "merge.fraud.alerts") -> None:
        self._producer = producer
        self._topic = topic

    async def publish(self, event_type: str, alert: FraudAlert) -> None:
        payload = {"event_type": event_type, "alert": alert.model_dump(mode="json")}
        key = (alert.user_id or alert.alert_id).encode("utf-8")
        try:
            await self._producer.send_and_wait(
                self._topic,
                value=json.dumps(payload).encode("utf-8"),
                key=key,
            )
            logger.info(
                "alert_published_to_kafka",
                alert_id=alert.alert_id,
                event_type=event_type,
                topic=self._topic,
            )
        except Exception:
            # The alert is already committed; publishing is best-effort
            logger.exception(
                "alert_publish_failed",
                alert_id=alert.alert_id,
                event_type=event_type,
                topic=self._topic,
            )


class AlertManager:
    """Persists evaluation outcomes and drives the review state machine.

    States: pending -> {resolved, false_positive, dismissed}. The transition
    is a single conditional UPDATE guarded on ``status = 'pending'``, so of
    two concurrent reviews only the first succeeds.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: FraudConfig | None = None,
        publisher: AlertPublisher | None = None,
    ) -> None:
        self._session = session
        self._config = config or default_config
        self._publisher = publisher

    async def _publish(self, event_type: str, alert: FraudAlert) -> None:
        if self._publisher is None:
            logger.debug("alert_publisher_not_configured", alert_id=alert.alert_id)
            return
        await self._publisher.publish(event_type, alert)

    def build_alert(
        self,
        alert_type: AlertType,
        risk_score: int,
        reason: str,
        matched_rule_ids: list[str],
        user_id: str | None = None,
        order_id: str | None = None,
        payment_id: str | None = None,
    ) -> FraudAlertDB:
        """Validate and stage a pending alert row on the session (no commit)."""
        max_score = self._config.scoring.max_risk_score
        if not 0 <= risk_score <= max_score:
            raise ValidationError(f"risk_score must be within [0, {max_score}], got {risk_score}")
        if alert_type == AlertType.ORDER and not order_id:
            raise ValidationError("order alerts require an order_id")
        if alert_type == AlertType.PAYMENT and not payment_id:
            raise ValidationError("payment alerts require a payment_id")
        if alert_type == AlertType.ACCOUNT and not user_id:
            raise ValidationError("account alerts require a user_id")

        row = FraudAlertDB(
            alert_id=str(uuid.uuid4()),
            user_id=user_id,
            alert_type=alert_type.value,
            risk_score=risk_score,
            reason=reason,
            order_id=order_id,
            payment_id=payment_id,
            matched_rules=list(matched_rule_ids),
            status=AlertStatus.PENDING.value,
            created_at=datetime.now(UTC),
        )
        self._session.add(row)
        return row

    async def raise_alert(
        self,
        alert_type: AlertType,
        risk_score: int,
        reason: str,
        matched_rule_ids: list[str],
        user_id: str | None = None,
        order_id: str | None = None,
        payment_id: str | None = None,
    ) -> FraudAlert:
        row = self.build_alert(
            alert_type,
            risk_score,
            reason,
            matched_rule_ids,
            user_id=user_id,
            order_id=order_id,
            payment_id=payment_id,
        )
        await self._session.commit()
        alert = to_alert(row)

        high_risk = risk_score >= self._config.analytics.high_risk_threshold
        log = logger.warning if high_risk else logger.info
        log(
            "fraud_alert_created",
            alert_id=alert.alert_id,
            alert_type=alert.alert_type.value,
            user_id=user_id,
            order_id=order_id,
            payment_id=payment_id,
            risk_score=risk_score,
            matched_rules=alert.matched_rules,
        )

        await self._publish(ALERT_RAISED, alert)
        return alert

    async def get_alert(self, alert_id: str) -> FraudAlert:
        result = await self._session.execute(
            select(FraudAlertDB).where(FraudAlertDB.alert_id == alert_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("Fraud alert", alert_id)
        return to_alert(row)

    async def list_alerts(
        self,
        status: AlertStatus | None = None,
        alert_type: AlertType | None = None,
        min_risk_score: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[FraudAlert]:
        """Most urgent first: risk_score descending, then created_at descending."""
        stmt = select(FraudAlertDB).where(*_alert_filters(status, alert_type, min_risk_score))
        stmt = stmt.order_by(
            FraudAlertDB.risk_score.desc(),
            FraudAlertDB.created_at.desc(),
            FraudAlertDB.id.desc(),
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(min(limit, self._config.alerts.max_page_size))

        result = await self._session.execute(stmt)
        return [to_alert(row) for row in result.scalars().all()]

    async def count_alerts(
        self,
        status: AlertStatus | None = None,
        alert_type: AlertType | None = None,
        min_risk_score: int | None = None,
    ) -> int:
        """Number of alerts matching the list filters, ignoring paging."""
        stmt = (
            select(func.count())
            .select_from(FraudAlertDB)
            .where(*_alert_filters(status, alert_type, min_risk_score))
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def review(
        self,
        alert_id: str,
        reviewer_id: str,
        new_status: AlertStatus,
        notes: str | None = None,
    ) -> bool:
        """Close a pending alert. Returns False if it was already closed.

        Raises NotFoundError for unknown alerts and ValidationError when the
        target status is not terminal.
        """
        if new_status not in TERMINAL_STATUSES:
            raise ValidationError(f"Cannot review an alert into status {new_status.value!r}")
        if not reviewer_id:
            raise ValidationError("reviewer_id is required")

        reviewed_at = datetime.now(UTC)
        stmt = (
            update(FraudAlertDB)
            .where(
                FraudAlertDB.alert_id == alert_id,
                FraudAlertDB.status == AlertStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                reviewed_by=reviewer_id,
                reviewed_at=reviewed_at,
                notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            await self._session.rollback()
            # Distinguish a missing alert from a lost compare-and-set
            current = await self.get_alert(alert_id)
            logger.warning(
                "alert_review_conflict",
                alert_id=alert_id,
                reviewer_id=reviewer_id,
                requested_status=new_status.value,
                current_status=current.status.value,
                reviewed_by=current.reviewed_by,
            )
            return False

        await self._session.commit()
        logger.info(
            "fraud_alert_reviewed",
            alert_id=alert_id,
            reviewer_id=reviewer_id,
            status=new_status.value,
        )

        alert = await self.get_alert(alert_id)
        await self._publish(ALERT_REVIEWED, alert)
        return True

"""Read-only alert analytics over a time window."""

from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import FraudAlert as FraudAlertDB

from .config import FraudConfig, default_config
from .errors import ValidationError
from .facts import as_utc
from .models import AlertStatus, AlertType, AnalyticsSummary, HighRiskAlert, parse_enum

logger = structlog.get_logger()


def summarize(
    rows: Iterable[Any],
    start: datetime,
    end: datetime,
    high_risk_threshold: int = 70,
    high_risk_limit: int = 10,
) -> AnalyticsSummary:
    """Aggregate alert rows into an AnalyticsSummary.

    Rows need ``alert_id``, ``alert_type``, ``status``, ``risk_score`` and
    ``created_at`` attributes. Callers are responsible for the window filter.
    """
    rows = list(rows)
    total = len(rows)

    by_type: Counter[str] = Counter()
    by_status: Counter[str] = Counter()
    score_sum = 0
    high_risk: list[HighRiskAlert] = []

    for row in rows:
        alert_type = parse_enum(AlertType, row.alert_type, "alert_type")
        status = parse_enum(AlertStatus, row.status, "status")
        by_type[alert_type.value] += 1
        by_status[status.value] += 1
        score_sum += row.risk_score
        if row.risk_score >= high_risk_threshold:
            high_risk.append(
                HighRiskAlert(
                    alert_id=row.alert_id,
                    alert_type=alert_type,
                    risk_score=row.risk_score,
                    status=status,
                    created_at=row.created_at,
                )
            )

    # Score descending, ties broken by most recent first
    high_risk.sort(key=lambda a: (a.risk_score, a.created_at), reverse=True)

    return AnalyticsSummary(
        start=start,
        end=end,
        total_alerts=total,
        pending_count=by_status[AlertStatus.PENDING.value],
        resolved_count=by_status[AlertStatus.RESOLVED.value],
        false_positive_count=by_status[AlertStatus.FALSE_POSITIVE.value],
        dismissed_count=by_status[AlertStatus.DISMISSED.value],
        average_risk_score=round(score_sum / total, 2) if total else 0.0,
        alerts_by_type=dict(by_type),
        alerts_by_status=dict(by_status),
        high_risk_alerts=high_risk[:high_risk_limit],
    )


class AlertAnalytics:
    """Computes summaries from alert history. Never writes, holds no locks."""

    def __init__(self, session: AsyncSession, config: FraudConfig | None = None) -> None:
        self._session = session
        self._config = config or default_config

    def resolve_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[datetime, datetime]:
        # Naive query parameters are taken as UTC
        end = as_utc(end) if end is not None else datetime.now(UTC)
        if start is None:
            start = end - timedelta(days=self._config.analytics.default_window_days)
        start = as_utc(start)
        if start > end:
            raise ValidationError(
                f"start ({start.isoformat()}) must not be after end ({end.isoformat()})"
            )
        return start, end

    async def summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AnalyticsSummary:
        start, end = self.resolve_window(start, end)

        stmt = select(
            FraudAlertDB.alert_id,
            FraudAlertDB.alert_type,
            FraudAlertDB.status,
            FraudAlertDB.risk_score,
            FraudAlertDB.created_at,
        ).where(
            FraudAlertDB.created_at >= start,
            FraudAlertDB.created_at <= end,
        )
        result = await self._session.execute(stmt)
        rows = result.all()

        summary = summarize(
            rows,
            start,
            end,
            high_risk_threshold=self._config.analytics.high_risk_threshold,
            high_risk_limit=self._config.analytics.high_risk_limit,
        )

        logger.info(
            "fraud_analytics_computed",
            start=start.isoformat(),
            end=end.isoformat(),
            total_alerts=summary.total_alerts,
            average_risk_score=summary.average_risk_score,
        )
        return summary

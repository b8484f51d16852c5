"""Fraud engine endpoints: rules, evaluation, alert review, analytics."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.database import get_session
from src.domains.fraud.alerts import AlertManager, AlertPublisher
from src.domains.fraud.analytics import AlertAnalytics
from src.domains.fraud.config import default_config
from src.domains.fraud.errors import ConflictError, NotFoundError
from src.domains.fraud.models import (
    AlertStatus,
    AlertType,
    RuleCreate,
    RuleType,
    RuleUpdate,
)
from src.domains.fraud.rule_store import RuleStore
from src.domains.fraud.scorer import FraudScorer

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/fraud", tags=["fraud"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ReviewRequest(BaseModel):
    reviewer_id: str
    status: AlertStatus
    notes: str | None = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_alert_publisher(request: Request) -> AlertPublisher | None:
    return getattr(request.app.state, "alert_publisher", None)


def get_rule_store(session: AsyncSession = Depends(get_session)) -> RuleStore:  # noqa: B008
    return RuleStore(session, config=default_config)


def get_alert_manager(
    session: AsyncSession = Depends(get_session),  # noqa: B008
    publisher: AlertPublisher | None = Depends(get_alert_publisher),  # noqa: B008
) -> AlertManager:
    return AlertManager(session, config=default_config, publisher=publisher)


def get_scorer(
    session: AsyncSession = Depends(get_session),  # noqa: B008
    publisher: AlertPublisher | None = Depends(get_alert_publisher),  # noqa: B008
) -> FraudScorer:
    return FraudScorer(session, config=default_config, publisher=publisher)


def get_analytics(session: AsyncSession = Depends(get_session)) -> AlertAnalytics:  # noqa: B008
    return AlertAnalytics(session, config=default_config)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@router.post("/rules", status_code=201)
async def create_rule(
    body: RuleCreate,
    store: RuleStore = Depends(get_rule_store),  # noqa: B008
) -> dict:
    rule = await store.create_rule(body)
    return rule.model_dump(mode="json")


@router.get("/rules")
async def list_rules(
    rule_type: RuleType | None = None,
    is_active: bool | None = None,
    store: RuleStore = Depends(get_rule_store),  # noqa: B008
) -> dict:
    rules = await store.list_rules(rule_type=rule_type, is_active=is_active)
    return {
        "items": [r.model_dump(mode="json") for r in rules],
        "count": len(rules),
    }


@router.get("/rules/{rule_id}")
async def get_rule(
    rule_id: str,
    store: RuleStore = Depends(get_rule_store),  # noqa: B008
) -> dict:
    rule = await store.get_rule(rule_id)
    return rule.model_dump(mode="json")


@router.patch("/rules/{rule_id}")
async def update_rule(
    rule_id: str,
    body: RuleUpdate,
    store: RuleStore = Depends(get_rule_store),  # noqa: B008
) -> dict:
    if not await store.update_rule(rule_id, body):
        raise NotFoundError("Fraud rule", rule_id)
    return {"success": True}


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    store: RuleStore = Depends(get_rule_store),  # noqa: B008
) -> dict:
    if not await store.delete_rule(rule_id):
        raise NotFoundError("Fraud rule", rule_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@router.post("/evaluate/order/{order_id}")
async def evaluate_order(
    order_id: str,
    scorer: FraudScorer = Depends(get_scorer),  # noqa: B008
) -> dict:
    alert = await scorer.evaluate_order(order_id)
    return alert.model_dump(mode="json")


@router.post("/evaluate/payment/{payment_id}")
async def evaluate_payment(
    payment_id: str,
    scorer: FraudScorer = Depends(get_scorer),  # noqa: B008
) -> dict:
    alert = await scorer.evaluate_payment(payment_id)
    return alert.model_dump(mode="json")


@router.post("/evaluate/account/{user_id}")
async def evaluate_account(
    user_id: str,
    scorer: FraudScorer = Depends(get_scorer),  # noqa: B008
) -> dict:
    alert = await scorer.evaluate_account(user_id)
    return alert.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


@router.get("/alerts")
async def list_alerts(
    status: AlertStatus | None = None,
    alert_type: AlertType | None = None,
    min_risk_score: int | None = Query(default=None, ge=0),
    limit: int = Query(default=default_config.alerts.default_page_size, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    manager: AlertManager = Depends(get_alert_manager),  # noqa: B008
) -> dict:
    alerts = await manager.list_alerts(
        status=status,
        alert_type=alert_type,
        min_risk_score=min_risk_score,
        limit=limit,
        offset=offset,
    )
    total = await manager.count_alerts(
        status=status, alert_type=alert_type, min_risk_score=min_risk_score
    )
    return {
        "items": [a.model_dump(mode="json") for a in alerts],
        "count": len(alerts),
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/alerts/{alert_id}")
async def get_alert(
    alert_id: str,
    manager: AlertManager = Depends(get_alert_manager),  # noqa: B008
) -> dict:
    alert = await manager.get_alert(alert_id)
    return alert.model_dump(mode="json")


@router.post("/alerts/{alert_id}/review")
async def review_alert(
    alert_id: str,
    body: ReviewRequest,
    manager: AlertManager = Depends(get_alert_manager),  # noqa: B008
) -> dict:
    reviewed = await manager.review(alert_id, body.reviewer_id, body.status, body.notes)
    if not reviewed:
        raise ConflictError(f"Alert {alert_id} has already been reviewed")
    return {"success": True}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@router.get("/analytics")
async def get_analytics_summary(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    analytics: AlertAnalytics = Depends(get_analytics),  # noqa: B008
) -> dict:
    summary = await analytics.summary(start=start_date, end=end_date)
    return summary.model_dump(mode="json")

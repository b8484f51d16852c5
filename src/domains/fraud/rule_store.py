"""Fraud rule persistence: create, read, list, update, and soft-delete."""

import math
import uuid
from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import FraudRule as FraudRuleDB

from .config import FraudConfig, default_config
from .errors import NotFoundError, ValidationError
from .models import (
    ConditionKind,
    FraudAction,
    Lifecycle,
    Rule,
    RuleCreate,
    RuleType,
    RuleUpdate,
    parse_enum,
)

logger = structlog.get_logger()


def to_rule(row: FraudRuleDB) -> Rule:
    """Map a stored row to the in-process Rule model."""
    return Rule(
        rule_id=row.rule_id,
        name=row.name,
        rule_type=parse_enum(RuleType, row.rule_type, "rule_type"),
        conditions=row.conditions,
        risk_score=row.risk_score,
        action=parse_enum(FraudAction, row.action, "action"),
        priority=row.priority,
        is_active=row.is_active,
        description=row.description,
        lifecycle=parse_enum(Lifecycle, row.lifecycle, "lifecycle"),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _serialize_conditions(conditions: dict[ConditionKind, float]) -> dict[str, float]:
    return {ConditionKind(k).value: float(v) for k, v in conditions.items()}


class RuleStore:
    """Rule CRUD over an async session.

    Archived rules are retained for audit but excluded from every read.
    """

    def __init__(self, session: AsyncSession, config: FraudConfig | None = None) -> None:
        self._session = session
        self._config = config or default_config

    def _validate(
        self,
        name: str | None = None,
        risk_score: int | None = None,
        priority: int | None = None,
        conditions: dict[ConditionKind, float] | None = None,
    ) -> None:
        if name is not None and not name.strip():
            raise ValidationError("Rule name must not be empty")
        if risk_score is not None:
            if risk_score < 0:
                raise ValidationError(f"risk_score must be >= 0, got {risk_score}")
            max_score = self._config.scoring.max_risk_score
            if risk_score > max_score:
                raise ValidationError(f"risk_score must be <= {max_score}, got {risk_score}")
        if priority is not None and priority < 0:
            raise ValidationError(f"priority must be >= 0, got {priority}")
        if conditions:
            for kind, threshold in conditions.items():
                if not math.isfinite(threshold) or threshold < 0:
                    raise ValidationError(
                        f"threshold for {ConditionKind(kind).value} must be a finite number >= 0"
                    )

    async def _get_row(self, rule_id: str) -> FraudRuleDB | None:
        stmt = select(FraudRuleDB).where(
            FraudRuleDB.rule_id == rule_id,
            FraudRuleDB.lifecycle == Lifecycle.ACTIVE.value,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_rule(self, data: RuleCreate) -> Rule:
        self._validate(
            name=data.name,
            risk_score=data.risk_score,
            priority=data.priority,
            conditions=data.conditions,
        )

        now = datetime.now(UTC)
        row = FraudRuleDB(
            rule_id=str(uuid.uuid4()),
            name=data.name.strip(),
            rule_type=data.rule_type.value,
            conditions=_serialize_conditions(data.conditions),
            risk_score=data.risk_score,
            action=data.action.value,
            priority=data.priority,
            is_active=data.is_active,
            description=data.description,
            lifecycle=Lifecycle.ACTIVE.value,
            created_at=now,
        )
        self._session.add(row)
        await self._session.commit()

        logger.info(
            "fraud_rule_created",
            rule_id=row.rule_id,
            name=row.name,
            rule_type=row.rule_type,
            risk_score=row.risk_score,
        )
        return to_rule(row)

    async def get_rule(self, rule_id: str) -> Rule:
        row = await self._get_row(rule_id)
        if row is None:
            raise NotFoundError("Fraud rule", rule_id)
        return to_rule(row)

    async def list_rules(
        self,
        rule_type: RuleType | None = None,
        is_active: bool | None = None,
    ) -> list[Rule]:
        """List non-archived rules, priority descending then name ascending."""
        stmt = select(FraudRuleDB).where(FraudRuleDB.lifecycle == Lifecycle.ACTIVE.value)
        if rule_type is not None:
            stmt = stmt.where(FraudRuleDB.rule_type == rule_type.value)
        if is_active is not None:
            stmt = stmt.where(FraudRuleDB.is_active.is_(is_active))
        stmt = stmt.order_by(FraudRuleDB.priority.desc(), FraudRuleDB.name.asc())

        result = await self._session.execute(stmt)
        return [to_rule(row) for row in result.scalars().all()]

    async def active_rules(self, rule_type: RuleType) -> list[Rule]:
        """Rules considered by evaluation: active, not archived, of this type."""
        return await self.list_rules(rule_type=rule_type, is_active=True)

    async def update_rule(self, rule_id: str, data: RuleUpdate) -> bool:
        """Apply the explicitly-set fields. Returns False if the rule is missing."""
        changes = data.model_dump(exclude_unset=True)
        self._validate(
            name=changes.get("name"),
            risk_score=changes.get("risk_score"),
            priority=changes.get("priority"),
            conditions=changes.get("conditions"),
        )

        row = await self._get_row(rule_id)
        if row is None:
            return False

        updated_fields: list[str] = []
        for field_name, value in changes.items():
            # Explicit nulls leave required fields unchanged; description may be cleared
            if value is None and field_name != "description":
                continue
            if field_name == "name":
                value = value.strip()
            elif field_name == "conditions":
                value = _serialize_conditions(value)
            elif field_name in ("rule_type", "action"):
                value = value.value
            if getattr(row, field_name) == value:
                # Re-applying the current value (e.g. activating an active rule) is a no-op
                continue
            setattr(row, field_name, value)
            updated_fields.append(field_name)

        if updated_fields:
            row.updated_at = datetime.now(UTC)
            await self._session.commit()

        logger.info("fraud_rule_updated", rule_id=rule_id, fields=updated_fields)
        return True

    async def delete_rule(self, rule_id: str) -> bool:
        """Soft-delete: archive and deactivate. Returns False if not found."""
        row = await self._get_row(rule_id)
        if row is None:
            return False

        row.lifecycle = Lifecycle.ARCHIVED.value
        row.is_active = False
        row.updated_at = datetime.now(UTC)
        await self._session.commit()

        logger.info("fraud_rule_archived", rule_id=rule_id, name=row.name)
        return True

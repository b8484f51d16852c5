"""Unit tests for the fraud rule store."""

import pytest

from src.db.models import FraudRule as FraudRuleDB
from src.domains.fraud.config import FraudConfig
from src.domains.fraud.errors import NotFoundError, ValidationError
from src.domains.fraud.models import (
    ConditionKind,
    FraudAction,
    Lifecycle,
    RuleCreate,
    RuleType,
    RuleUpdate,
)
from src.domains.fraud.rule_store import RuleStore
from tests.conftest import make_rule_row, result_with

CONFIG = FraudConfig()


def _create(**kwargs) -> RuleCreate:
    defaults = {
        "name": "Large order",
        "rule_type": RuleType.ORDER,
        "conditions": {ConditionKind.MAX_ORDER_AMOUNT: 1000},
        "risk_score": 40,
    }
    defaults.update(kwargs)
    return RuleCreate(**defaults)


class TestCreateRule:
    @pytest.mark.asyncio
    async def test_creates_and_commits(self, mock_db_session):
        store = RuleStore(mock_db_session, config=CONFIG)
        rule = await store.create_rule(
            _create(action=FraudAction.REVIEW, priority=5, description="big basket")
        )

        mock_db_session.add.assert_called_once()
        mock_db_session.commit.assert_awaited_once()
        row = mock_db_session.add.call_args[0][0]
        assert isinstance(row, FraudRuleDB)
        assert row.conditions == {"max_order_amount": 1000.0}
        assert row.lifecycle == "active"

        assert rule.rule_id == row.rule_id
        assert rule.name == "Large order"
        assert rule.rule_type == RuleType.ORDER
        assert rule.action == FraudAction.REVIEW
        assert rule.priority == 5
        assert rule.is_active is True

    @pytest.mark.asyncio
    async def test_create_inactive(self, mock_db_session):
        rule = await RuleStore(mock_db_session).create_rule(_create(is_active=False))
        assert rule.is_active is False

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).create_rule(_create(name="   "))
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_score_rejected(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).create_rule(_create(risk_score=-1))
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_score_above_ceiling_rejected(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session, config=CONFIG).create_rule(_create(risk_score=101))

    @pytest.mark.asyncio
    async def test_negative_priority_rejected(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).create_rule(_create(priority=-3))

    @pytest.mark.asyncio
    async def test_negative_threshold_rejected(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).create_rule(
                _create(conditions={ConditionKind.MAX_ITEMS: -2})
            )

    @pytest.mark.parametrize("threshold", ["NaN", "inf", "-Infinity"])
    def test_non_finite_threshold_rejected_by_model(self, threshold):
        with pytest.raises(ValueError):
            RuleCreate.model_validate_json(
                '{"name": "x", "rule_type": "order", "risk_score": 10,'
                f' "conditions": {{"max_order_amount": "{threshold}"}}}}'
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("threshold", [float("nan"), float("inf")])
    async def test_non_finite_threshold_rejected_by_store(self, mock_db_session, threshold):
        data = RuleCreate.model_construct(
            name="x",
            rule_type=RuleType.ORDER,
            conditions={ConditionKind.MAX_ORDER_AMOUNT: threshold},
            risk_score=10,
            action=FraudAction.FLAG,
            priority=0,
            description=None,
            is_active=True,
        )
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).create_rule(data)
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_finite_threshold_rejected_on_update(self, mock_db_session):
        data = RuleUpdate.model_construct(conditions={ConditionKind.MAX_ITEMS: float("nan")})
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).update_rule("rule-1", data)
        mock_db_session.commit.assert_not_awaited()

    def test_unknown_condition_name_rejected_by_model(self):
        with pytest.raises(ValueError):
            RuleCreate(
                name="x",
                rule_type=RuleType.ORDER,
                conditions={"max_velocity": 3},
                risk_score=10,
            )


class TestReadRules:
    @pytest.mark.asyncio
    async def test_get_rule(self, mock_db_session):
        mock_db_session.execute.return_value = result_with([make_rule_row(rule_id="r-9")])
        rule = await RuleStore(mock_db_session).get_rule("r-9")
        assert rule.rule_id == "r-9"
        assert rule.conditions == {"max_order_amount": 1000}

    @pytest.mark.asyncio
    async def test_get_missing_rule(self, mock_db_session):
        with pytest.raises(NotFoundError):
            await RuleStore(mock_db_session).get_rule("nope")

    @pytest.mark.asyncio
    async def test_get_excludes_archived(self, mock_db_session):
        with pytest.raises(NotFoundError):
            await RuleStore(mock_db_session).get_rule("r-1")
        stmt = mock_db_session.execute.call_args[0][0]
        assert "fraud_rules.lifecycle" in str(stmt)

    @pytest.mark.asyncio
    async def test_list_rules_filters_and_order(self, mock_db_session):
        rows = [make_rule_row(rule_id="a", priority=5), make_rule_row(rule_id="b", priority=1)]
        mock_db_session.execute.return_value = result_with(rows)

        rules = await RuleStore(mock_db_session).list_rules(
            rule_type=RuleType.PAYMENT, is_active=True
        )

        assert [r.rule_id for r in rules] == ["a", "b"]
        sql = str(mock_db_session.execute.call_args[0][0])
        assert "fraud_rules.rule_type" in sql
        assert "fraud_rules.is_active" in sql
        assert "ORDER BY fraud_rules.priority DESC, fraud_rules.name ASC" in sql

    @pytest.mark.asyncio
    async def test_list_without_filters(self, mock_db_session):
        await RuleStore(mock_db_session).list_rules()
        sql = str(mock_db_session.execute.call_args[0][0])
        assert "fraud_rules.rule_type =" not in sql
        assert "fraud_rules.is_active IS" not in sql

    @pytest.mark.asyncio
    async def test_unknown_stored_rule_type_rejected(self, mock_db_session):
        mock_db_session.execute.return_value = result_with([make_rule_row(rule_type="refund")])
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).get_rule("rule-1")


class TestUpdateRule:
    @pytest.mark.asyncio
    async def test_partial_update(self, mock_db_session):
        row = make_rule_row(risk_score=40, priority=1)
        mock_db_session.execute.return_value = result_with([row])

        ok = await RuleStore(mock_db_session).update_rule(
            "rule-1",
            RuleUpdate(risk_score=60, conditions={ConditionKind.MAX_ITEMS: 20}),
        )

        assert ok is True
        assert row.risk_score == 60
        assert row.conditions == {"max_items": 20.0}
        assert row.priority == 1
        assert row.name == "Large order"
        assert row.updated_at is not None
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reactivating_active_rule_is_noop(self, mock_db_session):
        row = make_rule_row(is_active=True)
        mock_db_session.execute.return_value = result_with([row])

        ok = await RuleStore(mock_db_session).update_rule("rule-1", RuleUpdate(is_active=True))

        assert ok is True
        assert row.is_active is True
        assert row.risk_score == 40
        assert row.updated_at is None
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deactivate(self, mock_db_session):
        row = make_rule_row(is_active=True)
        mock_db_session.execute.return_value = result_with([row])

        await RuleStore(mock_db_session).update_rule("rule-1", RuleUpdate(is_active=False))

        assert row.is_active is False
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_missing_rule(self, mock_db_session):
        ok = await RuleStore(mock_db_session).update_rule("nope", RuleUpdate(priority=3))
        assert ok is False

    @pytest.mark.asyncio
    async def test_update_validation(self, mock_db_session):
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).update_rule("rule-1", RuleUpdate(risk_score=-5))
        with pytest.raises(ValidationError):
            await RuleStore(mock_db_session).update_rule("rule-1", RuleUpdate(name=""))

    @pytest.mark.asyncio
    async def test_update_enum_fields(self, mock_db_session):
        row = make_rule_row()
        mock_db_session.execute.return_value = result_with([row])

        await RuleStore(mock_db_session).update_rule(
            "rule-1", RuleUpdate(rule_type=RuleType.PAYMENT, action=FraudAction.BLOCK)
        )

        assert row.rule_type == "payment"
        assert row.action == "block"


class TestDeleteRule:
    @pytest.mark.asyncio
    async def test_soft_delete(self, mock_db_session):
        row = make_rule_row()
        mock_db_session.execute.return_value = result_with([row])

        ok = await RuleStore(mock_db_session).delete_rule("rule-1")

        assert ok is True
        assert row.lifecycle == Lifecycle.ARCHIVED.value
        assert row.is_active is False
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_missing(self, mock_db_session):
        assert await RuleStore(mock_db_session).delete_rule("nope") is False
        mock_db_session.commit.assert_not_awaited()

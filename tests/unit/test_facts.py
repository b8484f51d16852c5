"""Unit tests for SQL-backed fact lookups."""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.domains.fraud.errors import NotFoundError
from src.domains.fraud.facts import SqlFactLookup
from tests.conftest import NOW, result_with


class TestOrderFacts:
    @pytest.mark.asyncio
    async def test_order_with_items(self, mock_db_session):
        order = SimpleNamespace(
            order_id="order-1", user_id="user-1", total_amount=Decimal("1500.00")
        )
        mock_db_session.execute.side_effect = [result_with([order]), result_with(scalar=3)]

        facts = await SqlFactLookup(mock_db_session).order_facts("order-1")

        assert facts.order_id == "order-1"
        assert facts.user_id == "user-1"
        assert facts.total_amount == 1500.0
        assert facts.item_count == 3
        count_sql = str(mock_db_session.execute.call_args_list[1][0][0])
        assert "order_items.order_id" in count_sql

    @pytest.mark.asyncio
    async def test_missing_order(self, mock_db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await SqlFactLookup(mock_db_session).order_facts("nope")
        assert exc_info.value.entity == "Order"
        assert mock_db_session.execute.await_count == 1


class TestPaymentFacts:
    @pytest.mark.asyncio
    async def test_payment_joins_order_owner(self, mock_db_session):
        payment = SimpleNamespace(payment_id="pay-1", order_id="order-1", amount=Decimal("250.5"))
        mock_db_session.execute.return_value = result_with([(payment, "user-7")])

        facts = await SqlFactLookup(mock_db_session).payment_facts("pay-1")

        assert facts.amount == 250.5
        assert facts.order_id == "order-1"
        assert facts.user_id == "user-7"
        sql = str(mock_db_session.execute.call_args[0][0])
        assert "LEFT OUTER JOIN orders" in sql

    @pytest.mark.asyncio
    async def test_payment_without_order(self, mock_db_session):
        payment = SimpleNamespace(payment_id="pay-2", order_id=None, amount=10)
        mock_db_session.execute.return_value = result_with([(payment, None)])

        facts = await SqlFactLookup(mock_db_session).payment_facts("pay-2")

        assert facts.order_id is None
        assert facts.user_id is None

    @pytest.mark.asyncio
    async def test_missing_payment(self, mock_db_session):
        with pytest.raises(NotFoundError):
            await SqlFactLookup(mock_db_session).payment_facts("nope")


class TestAccountFacts:
    @pytest.mark.asyncio
    async def test_age_and_order_count(self, mock_db_session):
        user = SimpleNamespace(user_id="user-1", created_at=NOW - timedelta(days=4, hours=3))
        mock_db_session.execute.side_effect = [result_with([user]), result_with(scalar=6)]

        facts = await SqlFactLookup(mock_db_session).account_facts("user-1", now=NOW)

        assert facts.account_age_days == 4
        assert facts.order_count == 6

    @pytest.mark.asyncio
    async def test_naive_timestamp_treated_as_utc(self, mock_db_session):
        created = (NOW - timedelta(days=40)).replace(tzinfo=None)
        user = SimpleNamespace(user_id="user-1", created_at=created)
        mock_db_session.execute.side_effect = [result_with([user]), result_with(scalar=0)]

        facts = await SqlFactLookup(mock_db_session).account_facts("user-1", now=NOW)

        assert facts.account_age_days == 40
        assert facts.order_count == 0

    @pytest.mark.asyncio
    async def test_unknown_creation_date(self, mock_db_session):
        user = SimpleNamespace(user_id="user-1", created_at=None)
        mock_db_session.execute.side_effect = [result_with([user]), result_with(scalar=2)]

        facts = await SqlFactLookup(mock_db_session).account_facts("user-1", now=NOW)

        assert facts.account_age_days is None

    @pytest.mark.asyncio
    async def test_missing_user(self, mock_db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await SqlFactLookup(mock_db_session).account_facts("ghost")
        assert exc_info.value.entity == "User"

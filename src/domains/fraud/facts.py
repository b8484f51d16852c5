"""Fact snapshot lookups against the order, payment, and account collaborators."""

from datetime import UTC, datetime
from typing import Protocol

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import OrderItemRecord, OrderRecord, PaymentRecord, UserRecord

from .errors import NotFoundError
from .models import AccountFacts, OrderFacts, PaymentFacts

logger = structlog.get_logger()


class FactLookup(Protocol):
    """Outbound collaborator interface. Each method raises NotFoundError."""

    async def order_facts(self, order_id: str) -> OrderFacts: ...

    async def payment_facts(self, payment_id: str) -> PaymentFacts: ...

    async def account_facts(self, user_id: str) -> AccountFacts: ...


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class SqlFactLookup:
    """Reads fact snapshots from the collaborator tables (read-only)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def order_facts(self, order_id: str) -> OrderFacts:
        result = await self._session.execute(
            select(OrderRecord).where(OrderRecord.order_id == order_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)

        count_result = await self._session.execute(
            select(func.count()).where(OrderItemRecord.order_id == order_id)
        )
        item_count = int(count_result.scalar_one())

        return OrderFacts(
            order_id=order.order_id,
            user_id=order.user_id,
            total_amount=float(order.total_amount),
            item_count=item_count,
        )

    async def payment_facts(self, payment_id: str) -> PaymentFacts:
        stmt = (
            select(PaymentRecord, OrderRecord.user_id)
            .outerjoin(OrderRecord, OrderRecord.order_id == PaymentRecord.order_id)
            .where(PaymentRecord.payment_id == payment_id)
        )
        result = await self._session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Payment", payment_id)

        payment, user_id = row
        return PaymentFacts(
            payment_id=payment.payment_id,
            order_id=payment.order_id,
            user_id=user_id,
            amount=float(payment.amount),
        )

    async def account_facts(self, user_id: str, now: datetime | None = None) -> AccountFacts:
        now = now or datetime.now(UTC)
        result = await self._session.execute(
            select(UserRecord).where(UserRecord.user_id == user_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)

        count_result = await self._session.execute(
            select(func.count()).where(OrderRecord.user_id == user_id)
        )
        order_count = int(count_result.scalar_one())

        account_age_days: int | None = None
        if user.created_at is not None:
            account_age_days = (now - as_utc(user.created_at)).days

        return AccountFacts(
            user_id=user.user_id,
            account_age_days=account_age_days,
            order_count=order_count,
        )

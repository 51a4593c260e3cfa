"""Тесты API заказов и атомарной записи заказа с outbox сообщением."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from order_outbox.models.order import Order
from order_outbox.models.outbox import OutboxMessage
from order_outbox.schemas.events import OrderCreated, parse_message
from order_outbox.services.orders import create_order
from order_outbox.services.outbox import enqueue
from tests.helpers import make_client, make_session_factories


def test_create_order_writes_outbox_message(tmp_path: Path) -> None:
    client, session_factory, _ = make_client(tmp_path)

    response = client.post("/orders", json={"customer_name": "Alice", "amount": 99.99})
    assert response.status_code == 201
    body = response.json()
    assert body["customer_name"] == "Alice"
    assert Decimal(str(body["amount"])) == Decimal("99.99")
    assert body["status"] == "Pending"
    order_id = body["id"]

    async def load() -> list[OutboxMessage]:
        async with session_factory() as db:
            result = await db.execute(select(OutboxMessage))
            return list(result.scalars().all())

    messages = asyncio.run(load())
    assert len(messages) == 1
    message = messages[0]
    assert message.type == "OrderCreated"
    assert message.processed_at is None
    assert message.error is None
    assert message.attempts == 0

    event = parse_message(message.type, message.payload)
    assert isinstance(event, OrderCreated)
    assert event.order_id == order_id
    assert event.customer_name == "Alice"
    assert event.amount == Decimal("99.99")


@pytest.mark.parametrize(
    "payload",
    [
        {"customer_name": "", "amount": 10},
        {"customer_name": "   ", "amount": 10},
        {"customer_name": "Bob", "amount": 0},
        {"customer_name": "Bob", "amount": -5},
        {"customer_name": "Bob", "amount": "1.234"},
        {"amount": 10},
    ],
)
def test_create_order_rejects_invalid_payload(tmp_path: Path, payload: dict) -> None:
    client, _, _ = make_client(tmp_path)

    response = client.post("/orders", json=payload)
    assert response.status_code == 422


def test_enqueue_is_atomic(tmp_path: Path) -> None:
    """Ошибка записи outbox сообщения откатывает и бизнес-строку."""

    session_factory, _ = make_session_factories(tmp_path)

    async def scenario() -> tuple[int, int]:
        async with session_factory() as db:
            await create_order(db, customer_name="Bob", amount=Decimal("10.00"))
            existing_id = (await db.execute(select(OutboxMessage.id))).scalar_one()

        async with session_factory() as db:
            clashing = OutboxMessage(
                id=existing_id,
                occurred_at=datetime.now(timezone.utc),
                type="OrderCreated",
                payload="{}",
                attempts=0,
            )
            order = Order(
                id=str(uuid4()),
                customer_name="Eve",
                amount=Decimal("1.00"),
                status="Pending",
            )
            with pytest.raises(IntegrityError):
                await enqueue(db, order, clashing)

        async with session_factory() as db:
            orders = (await db.execute(select(func.count(Order.id)))).scalar_one()
            messages = (
                await db.execute(select(func.count(OutboxMessage.id)))
            ).scalar_one()
        return orders, messages

    orders, messages = asyncio.run(scenario())
    assert orders == 1
    assert messages == 1


def test_health_reports_dispatcher_disabled(tmp_path: Path) -> None:
    client, _, _ = make_client(tmp_path)

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "dispatcher": "disabled"}

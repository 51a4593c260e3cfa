"""Применение события `OrderCreated` на стороне consumer'а."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_outbox.models.received_order import ReceivedOrder
from order_outbox.schemas.events import OrderCreated


def save_received_order(db: Session, event: OrderCreated) -> ReceivedOrder:
    """Сохранить полученный заказ и закоммитить.

    Notes
    -----
    Дубликаты по `order_id` не отсекаются: повторная доставка создаёт ещё
    одну запись.
    """

    received = ReceivedOrder(
        id=str(uuid4()),
        order_id=event.order_id,
        customer_name=event.customer_name,
        amount=event.amount,
        received_at=datetime.now(timezone.utc),
    )
    db.add(received)
    db.commit()
    return received


def list_received_orders(db: Session, order_id: str) -> list[ReceivedOrder]:
    """Получить все записи, полученные для заказа `order_id`."""

    result = db.execute(
        select(ReceivedOrder)
        .where(ReceivedOrder.order_id == order_id)
        .order_by(ReceivedOrder.received_at.asc())
    )
    return list(result.scalars().all())

"""Бизнес-логика заказов (producer)."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from order_outbox.models.order import Order, OrderStatus
from order_outbox.schemas.events import OrderCreated
from order_outbox.services.outbox import enqueue, new_outbox_message


async def create_order(
    db: AsyncSession,
    *,
    customer_name: str,
    amount: Decimal,
) -> Order:
    """Создать заказ и событие `OrderCreated` в одной транзакции.

    Parameters
    ----------
    db : sqlalchemy.ext.asyncio.AsyncSession
        Async сессия БД.
    customer_name : str
        Имя клиента.
    amount : decimal.Decimal
        Сумма заказа.

    Returns
    -------
    Order
        Созданный заказ.

    Raises
    ------
    sqlalchemy.exc.SQLAlchemyError
        Если запись не удалась; ни заказ, ни outbox сообщение не сохранены.
    """

    created_at = datetime.now(timezone.utc)
    order = Order(
        id=str(uuid4()),
        customer_name=customer_name,
        amount=amount,
        status=OrderStatus.PENDING.value,
        created_at=created_at,
    )
    event = OrderCreated(
        order_id=order.id,
        customer_name=customer_name,
        amount=amount,
        occurred_at=created_at,
    )
    message = new_outbox_message(event)

    await enqueue(db, order, message)
    logger.info(
        "Order {order_id} created with outbox message {message_id}",
        order_id=order.id,
        message_id=message.id,
    )
    return order

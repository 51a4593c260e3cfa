"""Модель заказа, полученного consumer'ом из RabbitMQ."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from order_outbox.db.base import Base


class ReceivedOrder(Base):
    """Результат обработки события `OrderCreated`.

    Attributes
    ----------
    id : str
        Локально сгенерированный UUID.
    order_id : str
        Идентификатор заказа из события (ключ для дедупликации).
    customer_name : str
        Имя клиента.
    amount : decimal.Decimal
        Сумма заказа.
    received_at : datetime
        Время обработки доставки.

    Notes
    -----
    Доставка at-least-once: при повторной доставке может появиться несколько
    записей с одним `order_id`, уникальность не навязывается.
    """

    __tablename__ = "received_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

"""Модель заказа (бизнес-запись, которую сопровождает outbox сообщение)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from order_outbox.db.base import Base


class OrderStatus(str, Enum):
    """Статус заказа.

    Notes
    -----
    Ни один компонент сервиса не переводит заказ из `Pending`.
    """

    PENDING = "Pending"


class Order(Base):
    """Заказ клиента.

    Attributes
    ----------
    id : str
        UUID заказа.
    customer_name : str
        Имя клиента.
    amount : decimal.Decimal
        Сумма заказа.
    status : str
        Статус заказа.
    created_at : datetime
        Дата создания.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'Pending'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

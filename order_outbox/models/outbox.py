"""Модель outbox сообщений для надёжной публикации в RabbitMQ.

Назначение
----------
Сообщение записывается в БД в одной транзакции с бизнес-операцией (созданием
заказа), а отдельный dispatcher доставляет его в брокер с ретраями.

Инварианты
----------
- `processed_at` выставляется ровно один раз, при успешной публикации.
- `attempts` увеличивается на каждой попытке (успешной или нет) и не сбрасывается.
- Записи не удаляются (append-only журнал).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from order_outbox.db.base import Base


class OutboxMessage(Base):
    """Outbox сообщение.

    Attributes
    ----------
    id : str
        UUID сообщения.
    occurred_at : datetime
        Логическое время события (порядок доставки).
    type : str
        Тип сообщения (например, `OrderCreated`).
    payload : str
        Сериализованное тело события (JSON), для хранилища непрозрачно.
    processed_at : datetime | None
        Время успешной публикации.
    error : str | None
        Последняя ошибка публикации.
    attempts : int
        Количество попыток публикации.
    """

    __tablename__ = "outbox_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    type: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

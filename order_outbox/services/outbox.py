"""Outbox хранилище: атомарная двойная запись и захват сообщений в работу.

Транзакционная модель
---------------------
Dispatcher захватывает пачку строк (`SELECT ... FOR UPDATE SKIP LOCKED`),
публикует их и фиксирует результат в *той же* транзакции. Пока транзакция
открыта, строки невидимы для других реплик; при падении процесса транзакция
откатывается и строки снова доступны для захвата (at-least-once).
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_outbox.db.base import Base
from order_outbox.models.outbox import OutboxMessage
from order_outbox.schemas.events import OrderCreated


def new_outbox_message(event: OrderCreated) -> OutboxMessage:
    """Построить outbox запись для события.

    Parameters
    ----------
    event : OrderCreated
        Доменное событие.

    Returns
    -------
    OutboxMessage
        Необработанная запись (`attempts=0`, `processed_at=None`).
    """

    return OutboxMessage(
        id=str(uuid4()),
        occurred_at=event.occurred_at,
        type=event.message_type,
        payload=event.to_payload(),
        attempts=0,
    )


async def enqueue(
    db: AsyncSession,
    business_row: Base,
    message: OutboxMessage,
) -> None:
    """Записать бизнес-строку и outbox сообщение в одной транзакции.

    Raises
    ------
    sqlalchemy.exc.SQLAlchemyError
        Ошибка хранилища; транзакция откачена, ни одна из строк не видна.
    """

    db.add(business_row)
    db.add(message)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise


def build_claim_statement(limit: int) -> Select[tuple[OutboxMessage]]:
    """Собрать запрос захвата необработанных сообщений.

    Notes
    -----
    `SKIP LOCKED` пропускает строки, захваченные другими репликами, вместо
    ожидания блокировки. SQLite игнорирует `FOR UPDATE` (используется в тестах).
    """

    return (
        select(OutboxMessage)
        .where(OutboxMessage.processed_at.is_(None))
        .order_by(OutboxMessage.occurred_at.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )


async def claim_batch(db: AsyncSession, *, limit: int) -> list[OutboxMessage]:
    """Захватить до `limit` необработанных сообщений, старые первыми.

    Строки остаются заблокированными до конца текущей транзакции `db`.

    Returns
    -------
    list[OutboxMessage]
        Захваченные сообщения; пустой список, если обрабатывать нечего.
    """

    if limit < 1:
        raise ValueError("limit must be positive")
    result = await db.execute(build_claim_statement(limit))
    return list(result.scalars().all())


def mark_processed(db: AsyncSession, message: OutboxMessage, *, attempts: int) -> None:
    """Отметить сообщение опубликованным (фиксируется коммитом захвата)."""

    if message.processed_at is not None:
        raise RuntimeError(f"outbox message {message.id} is already processed")
    message.processed_at = datetime.now(timezone.utc)
    message.attempts = attempts
    db.add(message)


def mark_failed(
    db: AsyncSession,
    message: OutboxMessage,
    *,
    attempts: int,
    error: str,
) -> None:
    """Записать ошибку публикации; сообщение остаётся доступным для ретрая."""

    message.attempts = attempts
    message.error = error
    db.add(message)

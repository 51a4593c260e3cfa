"""Outbox dispatcher: доставка outbox сообщений в RabbitMQ.

Поведение
---------
Каждый цикл (раз в `OUTBOX_POLL_SECONDS`):

1. Открывает транзакцию и захватывает до `OUTBOX_BATCH_SIZE` необработанных
   сообщений (`FOR UPDATE SKIP LOCKED`, старые первыми).
2. Публикует каждое по порядку. Успех -> `processed_at`, ошибка -> `error`;
   `attempts` растёт в обоих случаях. Ошибка одного сообщения не прерывает пачку.
3. Коммитит результат всей пачки одним коммитом.

Ошибка цикла целиком (например, БД недоступна) логируется, и процесс ждёт
следующего тика: dispatcher не должен ронять хост-процесс.
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_outbox.core.config import get_settings
from order_outbox.core.logging import setup_logging
from order_outbox.db.session import get_session_factory
from order_outbox.messaging.rabbitmq import RabbitMQConfig, RabbitMQPublisher
from order_outbox.models.outbox import OutboxMessage
from order_outbox.schemas.events import parse_message, require_known
from order_outbox.services.outbox import claim_batch, mark_failed, mark_processed


class Publisher(Protocol):
    """Блокирующий publisher сообщений (см. `RabbitMQPublisher`)."""

    def publish(self, message_type: str, payload: str) -> None: ...


@dataclass(frozen=True)
class DispatchOutcome:
    """Результат обработки одного outbox сообщения."""

    message_id: str
    attempts: int
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


async def publish_message(publisher: Publisher, message: OutboxMessage) -> None:
    """Проверить сообщение по его типу и опубликовать исходный payload.

    Raises
    ------
    UnknownMessageTypeError
        Тип сообщения не распознан.
    pydantic.ValidationError
        Payload не соответствует контракту события.
    pika.exceptions.AMQPError
        Ошибка брокера.
    """

    event = require_known(parse_message(message.type, message.payload))
    await asyncio.to_thread(publisher.publish, event.message_type, message.payload)


async def dispatch_batch(
    messages: list[OutboxMessage],
    publisher: Publisher,
) -> list[DispatchOutcome]:
    """Опубликовать пачку сообщений по порядку и вернуть исходы.

    Не пишет в БД: исходы применяет вызывающая сторона.
    """

    outcomes: list[DispatchOutcome] = []
    for message in messages:
        attempts = int(message.attempts) + 1
        try:
            await publish_message(publisher, message)
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Outbox publish failed id={id} type={t} attempts={a}: {err}",
                id=message.id,
                t=message.type,
                a=attempts,
                err=error,
            )
            outcomes.append(DispatchOutcome(message.id, attempts, error=error))
            continue

        logger.info(
            "Outbox message published id={id} type={t}",
            id=message.id,
            t=message.type,
        )
        outcomes.append(DispatchOutcome(message.id, attempts))
    return outcomes


class OutboxDispatcher:
    """Цикл опроса outbox.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Фабрика сессий БД producer'а.
    publisher : Publisher
        Publisher сообщений.
    batch_size : int
        Сколько сообщений захватывать за цикл.
    poll_seconds : float
        Пауза между циклами.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: Publisher,
        *,
        batch_size: int = 10,
        poll_seconds: float = 5.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        if poll_seconds <= 0:
            raise ValueError("poll_seconds must be positive")
        self._session_factory = session_factory
        self._publisher = publisher
        self._batch_size = batch_size
        self._poll_seconds = poll_seconds

    async def run_once(self) -> list[DispatchOutcome]:
        """Выполнить один цикл claim -> publish -> commit."""

        async with self._session_factory() as db:
            messages = await claim_batch(db, limit=self._batch_size)
            if not messages:
                await db.rollback()
                return []

            outcomes = await dispatch_batch(messages, self._publisher)
            by_id = {message.id: message for message in messages}
            for outcome in outcomes:
                message = by_id[outcome.message_id]
                if outcome.succeeded:
                    mark_processed(db, message, attempts=outcome.attempts)
                else:
                    mark_failed(
                        db,
                        message,
                        attempts=outcome.attempts,
                        error=outcome.error or "",
                    )
            await db.commit()

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.info(
            "Outbox batch committed size={n} failed={f}",
            n=len(outcomes),
            f=failed,
        )
        return outcomes

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Крутить циклы, пока не выставлен `stop_event`.

        Текущий цикл не прерывается: остановка срабатывает на ближайшей
        паузе между циклами.
        """

        logger.info(
            "Outbox dispatcher started poll={p}s batch={b}",
            p=self._poll_seconds,
            b=self._batch_size,
        )
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # noqa: BLE001
                logger.opt(exception=exc).error("Outbox dispatcher cycle failed")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Outbox dispatcher stopped")


def build_dispatcher() -> tuple[OutboxDispatcher, RabbitMQPublisher]:
    """Собрать dispatcher и его publisher из настроек приложения."""

    settings = get_settings()
    publisher = RabbitMQPublisher(RabbitMQConfig.from_settings(settings))
    dispatcher = OutboxDispatcher(
        get_session_factory(),
        publisher,
        batch_size=settings.outbox_batch_size,
        poll_seconds=settings.outbox_poll_seconds,
    )
    return dispatcher, publisher


async def _serve() -> None:
    dispatcher, publisher = build_dispatcher()
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    try:
        await dispatcher.run_forever(stop_event)
    finally:
        publisher.close()


def main() -> None:
    """Entrypoint."""

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)
    asyncio.run(_serve())


if __name__ == "__main__":
    main()

"""Консюмер события `OrderCreated` из RabbitMQ.

Поведение
---------
- При подключении объявляет fanout exchange, durable очередь и привязку,
  выставляет `prefetch_count=1` и подписывается с ручным ack.
- Каждое сообщение разбирается по AMQP свойству `type`, сохраняется в
  `received_orders` и только после коммита подтверждается (`basic_ack`).
- Любая ошибка обработки -> `basic_nack(requeue=True)`: брокер доставит
  сообщение повторно (at-least-once, дубликаты возможны).
- Разрыв подключения, закрытие канала брокером или отмена подписки завершают
  текущий цикл подключения; после паузы консюмер подключается заново с полным
  объявлением топологии.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable

from loguru import logger
from pika.adapters.blocking_connection import BlockingChannel, BlockingConnection
from pika.exceptions import AMQPError
from pika.spec import Basic, BasicProperties
from sqlalchemy.orm import Session

from order_outbox.core.config import get_settings
from order_outbox.core.logging import setup_logging
from order_outbox.db.session import get_consumer_session_factory
from order_outbox.messaging.rabbitmq import (
    ConnectionFactory,
    RabbitMQConfig,
    declare_consumer_topology,
    make_connection_factory,
)
from order_outbox.schemas.events import MessageKind, parse_message, require_known
from order_outbox.services.received_orders import save_received_order

# Как часто I/O цикл pika возвращает управление для проверки флага остановки.
_POLL_TIME_LIMIT_SECONDS = 1.0


class ConsumerCancelledError(AMQPError):
    """Брокер отменил подписку (например, очередь удалена)."""


class OrderCreatedConsumer:
    """Долгоживущий консюмер очереди `OrderCreated`.

    Parameters
    ----------
    config : RabbitMQConfig
        Настройки подключения и топологии.
    session_factory : Callable[[], Session]
        Фабрика sync сессий БД consumer'а.
    connection_factory : Callable[[], BlockingConnection] | None
        Фабрика подключений; по умолчанию `pika.BlockingConnection`.
    reconnect_seconds : float
        Пауза перед переподключением после разрыва.
    """

    def __init__(
        self,
        config: RabbitMQConfig,
        session_factory: Callable[[], Session],
        *,
        connection_factory: ConnectionFactory | None = None,
        reconnect_seconds: float = 5.0,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._connection_factory = connection_factory or make_connection_factory(
            config
        )
        self._reconnect_seconds = reconnect_seconds
        self._stop_event = threading.Event()
        self._connection: BlockingConnection | None = None
        self._cancelled_by_broker = False

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Запросить остановку; безопасно вызывать из другого потока/сигнала."""

        self._stop_event.set()
        connection = self._connection
        if connection is not None and connection.is_open:
            try:
                # Разбудить process_data_events, не дожидаясь time_limit.
                connection.add_callback_threadsafe(lambda: None)
            except AMQPError as exc:
                logger.debug("Consumer wakeup failed: {err}", err=str(exc))

    def handle_delivery(
        self,
        channel: BlockingChannel,
        method: Basic.Deliver,
        properties: BasicProperties,
        body: bytes,
    ) -> None:
        """Обработать одну доставку: сохранить и подтвердить либо вернуть в очередь."""

        message_type = properties.type or MessageKind.ORDER_CREATED.value
        try:
            event = require_known(parse_message(message_type, body))
            with self._session_factory() as db:
                received = save_received_order(db, event)
            channel.basic_ack(delivery_tag=method.delivery_tag)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Delivery {tag} failed, requeueing: {err}",
                tag=method.delivery_tag,
                err=str(exc),
            )
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return

        logger.info(
            "OrderCreated consumed order_id={order_id} customer={customer} "
            "amount={amount}, saved as received order {id}",
            order_id=event.order_id,
            customer=event.customer_name,
            amount=event.amount,
            id=received.id,
        )

    def consume_once(self) -> None:
        """Один цикл подключения: подключиться, объявить топологию, потреблять.

        Возвращает управление при остановке; разрыв подключения или отмена
        подписки брокером поднимают исключение.

        Raises
        ------
        pika.exceptions.AMQPError
            Подключение или канал закрыты.
        """

        connection = self._connection_factory()
        self._connection = connection
        self._cancelled_by_broker = False
        try:
            channel = connection.channel()
            declare_consumer_topology(
                channel,
                exchange=self._config.exchange,
                queue=self._config.queue,
            )
            channel.basic_qos(prefetch_count=1)
            channel.add_on_cancel_callback(self._on_cancelled)
            channel.basic_consume(
                queue=self._config.queue,
                on_message_callback=self.handle_delivery,
                auto_ack=False,
            )
            logger.info(
                "Consuming from queue={q} exchange={e}",
                q=self._config.queue,
                e=self._config.exchange,
            )

            while not self._stop_event.is_set():
                connection.process_data_events(time_limit=_POLL_TIME_LIMIT_SECONDS)
                if self._cancelled_by_broker:
                    raise ConsumerCancelledError("consumer cancelled by broker")
        finally:
            self._connection = None
            if connection.is_open:
                try:
                    connection.close()
                except AMQPError as exc:
                    logger.debug("Consumer connection close failed: {err}", err=str(exc))

    def run_forever(self) -> None:
        """Потреблять с переподключением, пока не вызван `stop()`."""

        logger.info("OrderCreated consumer started queue={q}", q=self._config.queue)
        while not self._stop_event.is_set():
            try:
                self.consume_once()
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "RabbitMQ consumer disconnected, reconnecting in {s}s: {err}",
                    s=self._reconnect_seconds,
                    err=str(exc) or exc.__class__.__name__,
                )
                self._stop_event.wait(self._reconnect_seconds)
        logger.info("OrderCreated consumer stopped")

    def _on_cancelled(self, method_frame) -> None:  # noqa: ANN001
        logger.warning("Broker cancelled consumer on queue={q}", q=self._config.queue)
        self._cancelled_by_broker = True


def build_consumer() -> OrderCreatedConsumer:
    """Собрать консюмер из настроек приложения."""

    settings = get_settings()
    return OrderCreatedConsumer(
        RabbitMQConfig.from_settings(settings),
        get_consumer_session_factory(),
        reconnect_seconds=settings.rabbitmq_consumer_reconnect_seconds,
    )


def main() -> None:
    """Entrypoint."""

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)
    consumer = build_consumer()

    def _handle_signal(signum, frame) -> None:  # noqa: ANN001,ARG001
        logger.info("Signal {s} received, stopping consumer", s=signum)
        consumer.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    consumer.run_forever()


if __name__ == "__main__":
    main()

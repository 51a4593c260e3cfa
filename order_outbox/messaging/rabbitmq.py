"""RabbitMQ топология и publisher для event-bus.

Topology
--------
- `<exchange>`: durable fanout exchange (по умолчанию `order.created`).
- `<queue>`: durable очередь consumer'а, привязана к exchange с пустым
  routing key.

Объявления идемпотентны, поэтому их безопасно повторять при каждом
(пере)подключении.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

import pika
from loguru import logger
from pika.adapters.blocking_connection import BlockingChannel, BlockingConnection
from pika.exceptions import AMQPError
from pika.exchange_type import ExchangeType
from pika.spec import BasicProperties

from order_outbox.core.config import Settings

PERSISTENT_DELIVERY_MODE = 2
JSON_CONTENT_TYPE = "application/json"

ConnectionFactory = Callable[[], BlockingConnection]


@dataclass(frozen=True)
class RabbitMQConfig:
    """Конфигурация подключения и топологии RabbitMQ."""

    amqp_url: str
    exchange: str
    queue: str
    publisher_confirms: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> RabbitMQConfig:
        """Собрать конфигурацию из настроек приложения."""

        return cls(
            amqp_url=settings.rabbitmq_dsn,
            exchange=settings.rabbitmq_exchange,
            queue=settings.rabbitmq_queue,
            publisher_confirms=settings.rabbitmq_publisher_confirms,
        )


def make_connection_factory(config: RabbitMQConfig) -> ConnectionFactory:
    """Вернуть фабрику блокирующих подключений pika для `config.amqp_url`."""

    parameters = pika.URLParameters(config.amqp_url)

    def _connect() -> BlockingConnection:
        return pika.BlockingConnection(parameters)

    return _connect


def declare_exchange(channel: BlockingChannel, exchange: str) -> None:
    """Объявить durable fanout exchange (idempotent)."""

    channel.exchange_declare(
        exchange=exchange,
        exchange_type=ExchangeType.fanout,
        durable=True,
        auto_delete=False,
    )


def declare_consumer_topology(
    channel: BlockingChannel,
    *,
    exchange: str,
    queue: str,
) -> None:
    """Объявить exchange, durable очередь и привязку очереди к exchange."""

    declare_exchange(channel, exchange)
    channel.queue_declare(
        queue=queue,
        durable=True,
        exclusive=False,
        auto_delete=False,
    )
    channel.queue_bind(queue=queue, exchange=exchange, routing_key="")


class RabbitMQPublisher:
    """Publisher с одним лениво создаваемым подключением и каналом.

    Parameters
    ----------
    config : RabbitMQConfig
        Настройки подключения и имя exchange.
    connection_factory : Callable[[], BlockingConnection] | None
        Фабрика подключений; по умолчанию `pika.BlockingConnection`.

    Notes
    -----
    Все операции publish/reconnect выполняются под одним `threading.Lock`:
    pika `BlockingConnection` не потокобезопасен, а dispatcher вызывает
    `publish` через `asyncio.to_thread`. Внутри одного вызова ретраев нет,
    решение о повторе принимает вызывающая сторона.
    """

    def __init__(
        self,
        config: RabbitMQConfig,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._config = config
        self._connection_factory = connection_factory or make_connection_factory(
            config
        )
        self._lock = threading.Lock()
        self._connection: BlockingConnection | None = None
        self._channel: BlockingChannel | None = None

    def publish(self, message_type: str, payload: str) -> None:
        """Опубликовать сообщение в fanout exchange.

        Parameters
        ----------
        message_type : str
            Логический тип сообщения (AMQP свойство `type`).
        payload : str
            JSON тело сообщения.

        Raises
        ------
        pika.exceptions.AMQPError
            Брокер недоступен, канал закрыт или публикация не подтверждена.
        """

        body = payload.encode("utf-8")
        props = BasicProperties(
            content_type=JSON_CONTENT_TYPE,
            delivery_mode=PERSISTENT_DELIVERY_MODE,
            type=message_type,
        )
        with self._lock:
            channel = self._get_or_create_channel_locked()
            try:
                channel.basic_publish(
                    exchange=self._config.exchange,
                    routing_key="",
                    body=body,
                    properties=props,
                )
            except AMQPError:
                # Следующий вызов переподключится с нуля.
                self._teardown_locked()
                raise

    def close(self) -> None:
        """Закрыть канал и подключение (если открыты)."""

        with self._lock:
            self._teardown_locked()

    def _channel_usable_locked(self) -> bool:
        if self._connection is None or self._channel is None:
            return False
        if not (self._connection.is_open and self._channel.is_open):
            return False
        try:
            # Обслужить heartbeat'ы и заметить разрыв, случившийся между публикациями.
            self._connection.process_data_events(time_limit=0)
        except AMQPError as exc:
            logger.warning("RabbitMQ connection is stale: {err}", err=str(exc))
            return False
        return self._channel.is_open

    def _get_or_create_channel_locked(self) -> BlockingChannel:
        if self._channel_usable_locked():
            assert self._channel is not None
            return self._channel

        self._teardown_locked()
        logger.info("RabbitMQ publisher (re)connecting")
        connection = self._connection_factory()
        try:
            channel = connection.channel()
            if self._config.publisher_confirms:
                channel.confirm_delivery()
            declare_exchange(channel, self._config.exchange)
        except Exception:
            _close_quietly(connection)
            raise

        self._connection = connection
        self._channel = channel
        logger.info(
            "RabbitMQ publisher connected, exchange={e} declared",
            e=self._config.exchange,
        )
        return channel

    def _teardown_locked(self) -> None:
        channel, connection = self._channel, self._connection
        self._channel = None
        self._connection = None
        if channel is not None and channel.is_open:
            try:
                channel.close()
            except AMQPError as exc:
                logger.debug("RabbitMQ channel close failed: {err}", err=str(exc))
        if connection is not None:
            _close_quietly(connection)


def _close_quietly(connection: BlockingConnection) -> None:
    """Закрыть подключение, игнорируя ошибки уже разорванного сокета."""

    if not connection.is_open:
        return
    try:
        connection.close()
    except AMQPError as exc:
        logger.debug("RabbitMQ connection close failed: {err}", err=str(exc))

"""Тесты RabbitMQ publisher'а (ленивое подключение, reconnect, сериализация)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from pika.exceptions import AMQPConnectionError, StreamLostError

from order_outbox.messaging.rabbitmq import (
    PERSISTENT_DELIVERY_MODE,
    RabbitMQPublisher,
    declare_consumer_topology,
)
from tests.fakes import FakeBroker
from tests.helpers import RABBITMQ_CONFIG


def _publisher(broker: FakeBroker) -> RabbitMQPublisher:
    return RabbitMQPublisher(RABBITMQ_CONFIG, connection_factory=broker.connect)


def test_publish_connects_lazily_and_declares_exchange(broker: FakeBroker) -> None:
    publisher = _publisher(broker)
    assert broker.connect_attempts == 0

    publisher.publish("OrderCreated", '{"order_id":"o-1"}')

    assert broker.connect_attempts == 1
    assert broker.exchanges["order.created"] == {
        "type": "fanout",
        "durable": True,
        "auto_delete": False,
    }
    assert broker.connections[0].channels[0].confirming is True

    (message,) = broker.published
    assert message.exchange == "order.created"
    assert message.body == b'{"order_id":"o-1"}'
    assert message.properties.delivery_mode == PERSISTENT_DELIVERY_MODE
    assert message.properties.type == "OrderCreated"
    assert message.properties.content_type == "application/json"


def test_publish_reuses_open_channel(broker: FakeBroker) -> None:
    publisher = _publisher(broker)

    publisher.publish("OrderCreated", "{}")
    publisher.publish("OrderCreated", "{}")

    assert broker.connect_attempts == 1
    assert broker.exchange_declarations == 1
    assert len(broker.published) == 2


def test_publish_reconnects_after_connection_drop(broker: FakeBroker) -> None:
    publisher = _publisher(broker)
    publisher.publish("OrderCreated", "{}")

    broker.connections[0].drop()
    publisher.publish("OrderCreated", "{}")

    assert broker.connect_attempts == 2
    assert broker.exchange_declarations == 2
    assert len(broker.published) == 2


def test_publish_does_not_retry_when_broker_unreachable(broker: FakeBroker) -> None:
    publisher = _publisher(broker)
    broker.fail_connects = 1

    with pytest.raises(AMQPConnectionError):
        publisher.publish("OrderCreated", "{}")
    assert broker.connect_attempts == 1
    assert broker.published == []

    publisher.publish("OrderCreated", "{}")
    assert broker.connect_attempts == 2
    assert len(broker.published) == 1


def test_failed_publish_propagates_and_next_call_reconnects(broker: FakeBroker) -> None:
    publisher = _publisher(broker)
    publisher.publish("OrderCreated", "{}")
    broker.fail_publishes = 1

    with pytest.raises(StreamLostError):
        publisher.publish("OrderCreated", "{}")

    publisher.publish("OrderCreated", "{}")
    assert broker.connect_attempts == 2
    assert len(broker.published) == 2


def test_published_message_reaches_bound_queue(broker: FakeBroker) -> None:
    channel = broker.connect().channel()
    declare_consumer_topology(channel, exchange="order.created", queue="order.created.queue")

    _publisher(broker).publish("OrderCreated", "{}")

    assert len(broker.queues["order.created.queue"]) == 1


def test_concurrent_publishes_are_serialized(broker: FakeBroker) -> None:
    publisher = _publisher(broker)

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [
            pool.submit(publisher.publish, "OrderCreated", f'{{"n":{i}}}')
            for i in range(40)
        ]
        for future in futures:
            future.result()

    assert len(broker.published) == 40
    assert broker.connect_attempts == 1


def test_close_releases_connection(broker: FakeBroker) -> None:
    publisher = _publisher(broker)
    publisher.publish("OrderCreated", "{}")

    publisher.close()

    assert broker.connections[0].is_open is False
    publisher.publish("OrderCreated", "{}")
    assert broker.connect_attempts == 2

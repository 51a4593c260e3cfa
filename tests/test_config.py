"""Тесты настроек (DSN, обязательные секреты)."""

from __future__ import annotations

import pika
import pytest
from pydantic import ValidationError
from sqlalchemy.engine import make_url

from order_outbox.core.config import Settings


def test_rabbitmq_dsn_encodes_default_vhost() -> None:
    settings = Settings(_env_file=None, rabbitmq_password="secret", rabbitmq_host="mq")

    assert settings.rabbitmq_dsn == "amqp://guest:secret@mq:5672/%2F?heartbeat=60"


def test_async_url_is_derived_from_sync_url() -> None:
    settings = Settings(
        _env_file=None,
        rabbitmq_password="secret",
        database_url="postgresql://app:pw@db:5432/orders",
    )

    assert settings.sqlalchemy_async_url == "postgresql+asyncpg://app:pw@db:5432/orders"
    assert settings.consumer_sqlalchemy_url == "postgresql://app:pw@db:5432/orders"


def test_consumer_database_can_be_separate() -> None:
    settings = Settings(
        _env_file=None,
        rabbitmq_password="secret",
        database_url="postgresql://app:pw@db-a:5432/service_a",
        consumer_database_url="postgresql://app:pw@db-b:5432/service_b",
    )

    assert settings.consumer_sqlalchemy_url.endswith("db-b:5432/service_b")


def test_postgres_dsn_requires_password(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None, rabbitmq_password="secret")

    with pytest.raises(ValueError):
        _ = settings.sqlalchemy_url


def test_missing_rabbitmq_password_is_fatal(monkeypatch) -> None:
    monkeypatch.delenv("RABBITMQ_PASSWORD", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_outbox_defaults() -> None:
    settings = Settings(_env_file=None, rabbitmq_password="secret")

    assert settings.outbox_poll_seconds == 5.0
    assert settings.outbox_batch_size == 10
    assert settings.rabbitmq_exchange == "order.created"
    assert settings.rabbitmq_queue == "order.created.queue"
    assert settings.rabbitmq_consumer_reconnect_seconds == 5.0


def test_rabbitmq_dsn_percent_encodes_credentials() -> None:
    settings = Settings(
        _env_file=None,
        rabbitmq_user="svc@orders",
        rabbitmq_password="p@ss:w/rd",
        rabbitmq_host="mq",
        rabbitmq_vhost="orders",
    )

    params = pika.URLParameters(settings.rabbitmq_dsn)

    assert settings.rabbitmq_dsn.startswith("amqp://svc%40orders:p%40ss%3Aw%2Frd@mq:5672/orders")
    assert params.credentials.username == "svc@orders"
    assert params.credentials.password == "p@ss:w/rd"
    assert params.host == "mq"
    assert params.virtual_host == "orders"


def test_postgres_dsn_percent_encodes_password(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(
        _env_file=None,
        rabbitmq_password="secret",
        postgres_password="p@ss/word",
    )

    url = make_url(settings.sqlalchemy_url)

    assert url.password == "p@ss/word"
    assert url.host == settings.postgres_host

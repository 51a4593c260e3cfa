"""Конфигурация pytest."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from order_outbox.core import config as config_module  # noqa: E402
from tests.fakes import FakeBroker  # noqa: E402

# В тестах не запускаем миграции и встроенный dispatcher (им нужны Postgres/RabbitMQ).
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("RUN_OUTBOX_DISPATCHER_IN_APP", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RABBITMQ_HOST", "rabbitmq")
os.environ.setdefault("RABBITMQ_PORT", "5672")
os.environ.setdefault("RABBITMQ_USER", "guest")
os.environ.setdefault("RABBITMQ_PASSWORD", "guest")
config_module.get_settings.cache_clear()


@pytest.fixture
def broker() -> FakeBroker:
    """Пустой in-memory брокер."""

    return FakeBroker()

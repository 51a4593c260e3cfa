"""Конфигурация сервиса outbox.

Все настройки приходят из переменных окружения (опционально через `.env`).
Секреты (пароли БД и RabbitMQ) нельзя хранить в репозитории: используйте `.env`
локально и секрет-менеджер в проде. Отсутствие обязательной настройки
(`RABBITMQ_PASSWORD`) является фатальной ошибкой на старте процесса.
"""

from __future__ import annotations

from functools import lru_cache
from urllib.parse import quote

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _to_async_url(url: str) -> str:
    """Перевести sync URL SQLAlchemy в async-драйвер.

    - `postgresql://...` -> `postgresql+asyncpg://...`
    - `sqlite+pysqlite://...` / `sqlite://...` -> `sqlite+aiosqlite://...`
    """

    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite+pysqlite://"):
        return url.replace("sqlite+pysqlite://", "sqlite+aiosqlite://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Settings(BaseSettings):
    """Настройки сервиса из переменных окружения.

    Notes
    -----
    Producer (API + dispatcher) и consumer могут работать с разными БД:
    `CONSUMER_DATABASE_URL` по умолчанию совпадает с БД producer'а.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field("order-outbox")
    log_level: str = Field("INFO")
    log_json: bool = Field(False)

    run_migrations_on_startup: bool = Field(False)
    migrations_wait_tries: int = Field(10, ge=1)
    migrations_wait_sleep_seconds: float = Field(3.0, gt=0)

    # DB settings
    postgres_host: str = "db"
    postgres_port: int = Field(5432, ge=1, le=65535)
    postgres_db: str = "orders"
    postgres_user: str = "postgres"
    postgres_password: SecretStr | None = None

    database_url: str | None = None
    database_async_url: str | None = None
    consumer_database_url: str | None = None

    # RabbitMQ settings
    rabbitmq_host: str = "rabbitmq"
    rabbitmq_port: int = Field(5672, ge=1, le=65535)
    rabbitmq_user: str = "guest"
    rabbitmq_password: SecretStr = Field(...)
    rabbitmq_vhost: str = Field("/")
    rabbitmq_exchange: str = Field("order.created", min_length=1)
    rabbitmq_queue: str = Field("order.created.queue", min_length=1)
    rabbitmq_heartbeat_seconds: int = Field(60, ge=0)
    rabbitmq_publisher_confirms: bool = Field(True)
    rabbitmq_consumer_reconnect_seconds: float = Field(5.0, gt=0)

    # Outbox dispatcher
    outbox_poll_seconds: float = Field(5.0, gt=0)
    outbox_batch_size: int = Field(10, ge=1)
    run_outbox_dispatcher_in_app: bool = Field(False)

    @property
    def postgres_dsn(self) -> str:
        """Build PostgreSQL DSN from component settings."""

        if self.postgres_password is None:
            raise ValueError(
                "POSTGRES_PASSWORD is required when DATABASE_URL is not set",
            )
        user = quote(self.postgres_user, safe="")
        password = quote(self.postgres_password.get_secret_value(), safe="")
        return (
            f"postgresql://{user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def rabbitmq_dsn(self) -> str:
        """Собрать AMQP URL из компонентных настроек.

        Returns
        -------
        str
            URL для `pika.URLParameters`.

        Notes
        -----
        Логин, пароль и vhost percent-кодируются: vhost `/` становится `%2F`,
        иначе pika подключится к пустому vhost.
        """

        vhost = self.rabbitmq_vhost
        encoded_vhost = quote(vhost if vhost == "/" else vhost.lstrip("/"), safe="")
        user = quote(self.rabbitmq_user, safe="")
        password = quote(self.rabbitmq_password.get_secret_value(), safe="")
        return (
            f"amqp://{user}:{password}"
            f"@{self.rabbitmq_host}:{self.rabbitmq_port}/{encoded_vhost}"
            f"?heartbeat={self.rabbitmq_heartbeat_seconds}"
        )

    @property
    def sqlalchemy_url(self) -> str:
        """Вернуть sync URL БД producer'а.

        Priority
        --------
        1) `DATABASE_URL`, если задан.
        2) Иначе собирается DSN PostgreSQL из компонентных env-переменных.
        """

        return self.database_url or self.postgres_dsn

    @property
    def sqlalchemy_async_url(self) -> str:
        """Вернуть async URL БД producer'а для SQLAlchemy AsyncEngine."""

        return _to_async_url(self.database_async_url or self.sqlalchemy_url)

    @property
    def consumer_sqlalchemy_url(self) -> str:
        """Вернуть sync URL БД consumer'а (таблица `received_orders`)."""

        return self.consumer_database_url or self.sqlalchemy_url

    @field_validator("rabbitmq_password")
    @classmethod
    def _validate_non_empty_secret(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("secret value must not be empty")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Вернуть кэшированный экземпляр настроек.

    Raises
    ------
    pydantic.ValidationError
        Если обязательные настройки не заданы.
    """

    return Settings()

"""Окружение Alembic (sync, psycopg2).

При вызове из `order_outbox.core.migrations` URL и флаги передаются через
`config.attributes`; при запуске из CLI URL берётся из настроек сервиса.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection

from order_outbox import models as _models  # noqa: F401  # register tables
from order_outbox.core.config import get_settings
from order_outbox.db.base import Base

config = context.config


def get_config_value(key: str, default: Any = None) -> Any:
    """Значение из `config.attributes` (программный вызов) или default (CLI)."""

    return config.attributes.get(key, default)


# В процессе сервиса логирование уже перехвачено loguru.
if config.config_file_name is not None and get_config_value("configure_logger", True):
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", get_settings().sqlalchemy_url)

COMPARE_TYPE = get_config_value("compare_type", True)


def include_object(
    obj: Any,
    name: str | None,
    type_: str,
    reflected: bool,
    compare_to: Any,
) -> bool:
    """Не трогать служебную таблицу Alembic при autogenerate."""

    _ = obj, reflected, compare_to
    return not (type_ == "table" and name == "alembic_version")


def run_migrations_offline() -> None:
    """Сгенерировать SQL без подключения к БД."""

    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=COMPARE_TYPE,
        include_object=include_object,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    # SQLite не умеет ALTER большинства колонок, нужен batch mode.
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=COMPARE_TYPE,
        include_object=include_object,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        with connectable.connect() as connection:
            do_run_migrations(connection)
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

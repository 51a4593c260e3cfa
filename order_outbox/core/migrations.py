"""Запуск Alembic миграций при старте процесса (lifespan API).

Важно
-----
В продакшене миграции обычно выполняет отдельный job. Для самодостаточного
запуска (`docker compose up`) их можно прогнать на старте API. Для Postgres
берётся advisory lock, чтобы при нескольких репликах миграции выполнял ровно
один процесс. Если у consumer'а своя БД, она мигрируется тем же набором
ревизий.
"""

from __future__ import annotations

import time
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from alembic import command
from alembic.config import Config
from loguru import logger

from order_outbox.core.config import Settings, get_settings

ALEMBIC_INI = str(Path(__file__).resolve().parents[2] / "alembic.ini")


def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql://")


def _make_alembic_config(database_url: str) -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    cfg.attributes["configure_logger"] = False
    return cfg


def _wait_for_postgres(settings: Settings, database_url: str) -> None:
    """Подождать доступности Postgres перед миграциями.

    Raises
    ------
    RuntimeError
        Если БД не ответила за `MIGRATIONS_WAIT_TRIES` попыток.
    """

    tries = int(settings.migrations_wait_tries)
    sleep_seconds = float(settings.migrations_wait_sleep_seconds)

    for i in range(1, tries + 1):
        try:
            conn = psycopg2.connect(database_url)
            conn.close()
            return
        except psycopg2.OperationalError as exc:
            logger.warning(
                "DB not ready ({i}/{n}): {err}. Retrying in {s}s",
                i=i,
                n=tries,
                err=str(exc).strip(),
                s=sleep_seconds,
            )
            time.sleep(sleep_seconds)

    raise RuntimeError("database is not reachable for migrations")


@contextmanager
def _pg_advisory_lock(database_url: str, lock_key: int) -> Iterator[None]:
    """Взять advisory lock на Postgres и гарантированно отпустить."""

    conn = psycopg2.connect(database_url)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_lock(%s)", (lock_key,))
        yield
    finally:
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_advisory_unlock(%s)", (lock_key,))
        finally:
            conn.close()


def upgrade_database(settings: Settings, database_url: str) -> None:
    """Прогнать `alembic upgrade head` для одной БД."""

    cfg = _make_alembic_config(database_url)
    if not _is_postgres(database_url):
        logger.info("Running alembic upgrade head (non-postgres)")
        command.upgrade(cfg, "head")
        return

    _wait_for_postgres(settings, database_url)
    lock_key = zlib.crc32(settings.app_name.encode("utf-8"))
    logger.info("Acquiring advisory lock key={k}", k=lock_key)
    with _pg_advisory_lock(database_url, lock_key):
        logger.info("Running alembic upgrade head (postgres)")
        command.upgrade(cfg, "head")


def run_migrations_once() -> None:
    """Запустить миграции до head для БД producer'а и consumer'а."""

    settings = get_settings()
    logger.info(
        "Migrations on startup enabled={v}",
        v=settings.run_migrations_on_startup,
    )
    if not settings.run_migrations_on_startup:
        return

    urls = dict.fromkeys([settings.sqlalchemy_url, settings.consumer_sqlalchemy_url])
    for url in urls:
        upgrade_database(settings, url)
    logger.info("Migrations completed databases={n}", n=len(urls))

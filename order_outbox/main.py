"""Точка входа FastAPI приложения (producer заказов)."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from order_outbox.api.router import api_router
from order_outbox.core.config import get_settings
from order_outbox.core.logging import setup_logging
from order_outbox.core.migrations import run_migrations_once
from order_outbox.workers.outbox_dispatcher import build_dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan приложения.

    Запускает миграции один раз при старте процесса (если включено) и,
    при `RUN_OUTBOX_DISPATCHER_IN_APP=true`, outbox dispatcher фоновой задачей.
    """

    await asyncio.to_thread(run_migrations_once)

    settings = get_settings()
    if not settings.run_outbox_dispatcher_in_app:
        yield
        return

    dispatcher, publisher = build_dispatcher()
    stop_event = asyncio.Event()
    app.state.dispatcher_task = asyncio.create_task(
        dispatcher.run_forever(stop_event),
        name="outbox-dispatcher",
    )
    try:
        yield
    finally:
        stop_event.set()
        try:
            await app.state.dispatcher_task
        except Exception as exc:  # noqa: BLE001
            logger.opt(exception=exc).error("Outbox dispatcher task failed")
        await asyncio.to_thread(publisher.close)


def create_app() -> FastAPI:
    """Создать и сконфигурировать экземпляр FastAPI.

    Returns
    -------
    fastapi.FastAPI
        Сконфигурированное приложение.
    """

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.dispatcher_task = None
    app.include_router(api_router)
    return app


app = create_app()

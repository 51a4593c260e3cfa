"""Движки и фабрики сессий БД.

Notes
-----
API и outbox dispatcher работают через SQLAlchemy AsyncSession, чтобы не
блокировать event loop. Consumer RabbitMQ построен на блокирующем pika, поэтому
пишет в свою БД через обычную sync Session.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, sessionmaker

from order_outbox.core.config import get_settings


@lru_cache(maxsize=1)
def get_async_engine() -> AsyncEngine:
    """Создать и закэшировать AsyncEngine БД producer'а."""

    settings = get_settings()
    return create_async_engine(settings.sqlalchemy_async_url, pool_pre_ping=True)


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Вернуть фабрику async сессий БД producer'а.

    Returns
    -------
    sqlalchemy.ext.asyncio.async_sessionmaker
        Фабрика сессий с `expire_on_commit=False`.
    """

    return async_sessionmaker(
        bind=get_async_engine(),
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache(maxsize=1)
def get_consumer_engine() -> Engine:
    """Создать и закэшировать sync Engine БД consumer'а."""

    settings = get_settings()
    return create_engine(settings.consumer_sqlalchemy_url, pool_pre_ping=True)


@lru_cache(maxsize=1)
def get_consumer_session_factory() -> sessionmaker[Session]:
    """Вернуть фабрику sync сессий БД consumer'а."""

    return sessionmaker(
        bind=get_consumer_engine(),
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: открыть async сессию БД на запрос.

    Yields
    ------
    sqlalchemy.ext.asyncio.AsyncSession
        Async сессия БД.
    """

    async with get_session_factory()() as db:
        yield db

"""Корневой роутер API."""

from fastapi import APIRouter

from order_outbox.api.routes import health, orders

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(orders.router, tags=["orders"])

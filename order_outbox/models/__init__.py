"""ORM модели сервиса (импорт регистрирует таблицы в `Base.metadata`)."""

from order_outbox.models.order import Order, OrderStatus
from order_outbox.models.outbox import OutboxMessage
from order_outbox.models.received_order import ReceivedOrder

__all__ = ["Order", "OrderStatus", "OutboxMessage", "ReceivedOrder"]

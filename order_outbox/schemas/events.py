"""Контракты событий, передаваемых через outbox и RabbitMQ.

Тип сообщения (`type` в outbox и в свойствах AMQP) разрешается один раз на
границе хранилища/брокера в закрытое объединение:

- известное событие (`OrderCreated`);
- `UnknownMessage` для нераспознанного типа.

Wire-формат: UTF-8 JSON с полями в snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    """Известные типы сообщений."""

    ORDER_CREATED = "OrderCreated"


class UnknownMessageTypeError(ValueError):
    """Тип сообщения не распознан (ни publisher, ни consumer его не знают)."""

    def __init__(self, message_type: str) -> None:
        super().__init__(f"Unknown message type: {message_type}")
        self.message_type = message_type


class OrderCreated(BaseModel):
    """Событие создания заказа.

    Attributes
    ----------
    order_id : str
        UUID заказа в сервисе-источнике.
    customer_name : str
        Имя клиента.
    amount : decimal.Decimal
        Сумма заказа.
    occurred_at : datetime
        Время события.
    """

    model_config = ConfigDict(frozen=True)

    message_type: ClassVar[str] = MessageKind.ORDER_CREATED.value

    order_id: str = Field(min_length=1)
    customer_name: str
    amount: Decimal
    occurred_at: datetime

    def to_payload(self) -> str:
        """Сериализовать событие в JSON строку для outbox/брокера."""

        return self.model_dump_json()


@dataclass(frozen=True)
class UnknownMessage:
    """Сообщение с нераспознанным типом (payload не разбирается)."""

    type: str
    payload: str


OutboxEvent = Union[OrderCreated, UnknownMessage]

_EVENT_MODELS: dict[str, type[OrderCreated]] = {
    MessageKind.ORDER_CREATED.value: OrderCreated,
}


def parse_message(message_type: str, payload: str | bytes) -> OutboxEvent:
    """Разобрать сообщение по его типу.

    Parameters
    ----------
    message_type : str
        Тип сообщения из outbox/свойств AMQP.
    payload : str | bytes
        JSON тело сообщения.

    Returns
    -------
    OrderCreated | UnknownMessage
        Событие известного типа или `UnknownMessage`.

    Raises
    ------
    pydantic.ValidationError
        Если тип известен, но payload не соответствует контракту.
    """

    model = _EVENT_MODELS.get(message_type)
    if model is None:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return UnknownMessage(type=message_type, payload=payload)
    return model.model_validate_json(payload)


def require_known(event: OutboxEvent) -> OrderCreated:
    """Вернуть известное событие или поднять `UnknownMessageTypeError`."""

    if isinstance(event, UnknownMessage):
        raise UnknownMessageTypeError(event.type)
    return event

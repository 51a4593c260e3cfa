"""Схемы HTTP API заказов."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from order_outbox.models.order import OrderStatus


class OrderCreate(BaseModel):
    """Запрос на создание заказа.

    Attributes
    ----------
    customer_name : str
        Имя клиента (непустое).
    amount : decimal.Decimal
        Сумма заказа (> 0, не более 2 знаков после запятой).
    """

    customer_name: str = Field(min_length=1, max_length=256)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)

    @field_validator("customer_name")
    @classmethod
    def validate_customer_name(cls, value: str) -> str:
        """Проверить, что имя не состоит из одних пробелов."""

        value = value.strip()
        if not value:
            raise ValueError("customer_name must not be blank")
        return value


class OrderOut(BaseModel):
    """Ответ с данными созданного заказа."""

    id: str
    customer_name: str
    amount: Decimal
    status: OrderStatus

"""Эндпоинты заказов."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from order_outbox.db.session import get_db
from order_outbox.models.order import Order
from order_outbox.schemas.orders import OrderCreate, OrderOut
from order_outbox.services.orders import create_order

router = APIRouter()


def _to_order_out(order: Order) -> OrderOut:
    """Преобразовать модель Order в схему ответа."""

    return OrderOut(
        id=order.id,
        customer_name=order.customer_name,
        amount=order.amount,
        status=order.status,
    )


@router.post("/orders", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order_endpoint(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderOut:
    """Создать заказ и событие `OrderCreated` (атомарно).

    Parameters
    ----------
    payload : OrderCreate
        Имя клиента и сумма заказа.

    Returns
    -------
    OrderOut
        Созданный заказ в статусе `Pending`.

    Raises
    ------
    HTTPException
        422, если тело запроса невалидно.
    """

    order = await create_order(
        db,
        customer_name=payload.customer_name,
        amount=payload.amount,
    )
    return _to_order_out(order)

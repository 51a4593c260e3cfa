"""Healthcheck эндпоинты."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict:
    """Вернуть статус API и встроенного outbox dispatcher'а.

    Returns
    -------
    dict
        `{"status": "ok", "dispatcher": "running" | "stopped" | "disabled"}`.
    """

    task = getattr(request.app.state, "dispatcher_task", None)
    if task is None:
        dispatcher = "disabled"
    elif task.done():
        dispatcher = "stopped"
    else:
        dispatcher = "running"
    return {"status": "ok", "dispatcher": dispatcher}

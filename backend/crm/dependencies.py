"""
Зависимости FastAPI: контекст бэкенда и календарь из состояния приложения
"""
from fastapi import Request

from .services.calendar import SlotReconciler
from .services.context import BackendContext


def get_context(request: Request) -> BackendContext:
    return request.app.state.context


def get_reconciler(request: Request) -> SlotReconciler:
    return request.app.state.reconciler

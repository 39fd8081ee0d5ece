"""
Исключения CRM

Сетевые ошибки и ошибки авторизации повторяются внутри сервисов,
бизнес-ошибки и ошибки валидации сразу уходят вызывающему коду.
"""
from typing import Any, Optional


class CrmError(Exception):
    """Базовое исключение CRM"""


# ==================== Ошибки бэкенда ====================

class BackendError(CrmError):
    """Неуспешный ответ бэкенда"""

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data or {}


class TransientNetworkError(BackendError):
    """Обрыв соединения, таймаут, 5xx - можно повторить"""


class AuthExpired(BackendError):
    """Сессия недействительна (401/403) - нужен повторный вход"""


class RecordNotFound(BackendError):
    """Запись не найдена (404)"""


class DataUnavailable(CrmError):
    """Данные не получены после всех попыток"""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        message = f"{operation}: данные недоступны"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


# ==================== Бизнес-ошибки ====================

class AlreadyClaimed(CrmError):
    """Запись уже редактируется другим пользователем"""

    def __init__(self, appointment_id: str):
        super().__init__(f"Запись {appointment_id} уже редактируется другим пользователем")
        self.appointment_id = appointment_id


class MissingCustomer(CrmError):
    """Не выбран клиент для записи"""

    def __init__(self, appointment_id: str):
        super().__init__(f"Для записи {appointment_id} не выбран клиент")
        self.appointment_id = appointment_id


class InvalidTransition(CrmError):
    """Недопустимый переход статуса записи"""

    def __init__(self, appointment_id: str, current: str, target: str):
        super().__init__(f"Запись {appointment_id}: переход {current} -> {target} недопустим")
        self.appointment_id = appointment_id
        self.current = current
        self.target = target


class InvalidQcStatus(CrmError):
    """Статус не относится к доске контроля качества"""

    def __init__(self, field: str, status: str):
        super().__init__(f"Статус '{status}' недопустим для {field}")
        self.field = field
        self.status = status


class SlotGenerationError(CrmError):
    """Некорректные параметры слота (окно, шаг)"""

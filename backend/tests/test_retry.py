"""
Тесты политики повторов чтения
"""
import asyncio

import pytest

from crm.config import Settings
from crm.exceptions import AuthExpired, DataUnavailable, RecordNotFound, TransientNetworkError
from crm.services import retry
from crm.services.context import BackendContext
from crm.services.retry import with_retry


class FakeAuth:
    def __init__(self):
        self.token = "token"
        self.model = {"id": "agent0000000001"}
        self.logins = 0
        self.clears = 0

    def is_valid(self):
        return bool(self.token)

    async def authenticate(self):
        self.logins += 1
        self.token = "token"
        return self.model

    def clear(self):
        self.clears += 1
        self.token = ""


class FlakyOperation:
    """Операция, которая падает заданными ошибками, потом возвращает результат"""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.fixture
def delays(monkeypatch):
    recorded = []

    async def sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(retry.asyncio, "sleep", sleep)
    return recorded


@pytest.fixture
def retry_context():
    return BackendContext(
        store=None,
        feed=None,
        auth=FakeAuth(),
        settings=Settings(RETRY_MAX_ATTEMPTS=3, RETRY_BASE_DELAY_SECONDS=1.0)
    )


def test_success_without_retry(retry_context, delays):
    operation = FlakyOperation()
    assert asyncio.run(with_retry(operation, "load", retry_context)) == "ok"
    assert operation.calls == 1
    assert delays == []


def test_transient_errors_are_retried_with_growing_delay(retry_context, delays):
    operation = FlakyOperation(TransientNetworkError("timeout"), TransientNetworkError("timeout"))
    assert asyncio.run(with_retry(operation, "load", retry_context)) == "ok"
    assert operation.calls == 3
    assert delays == [1.0, 2.0]


def test_exhausted_attempts_raise_data_unavailable(retry_context, delays):
    error = TransientNetworkError("connection refused")
    operation = FlakyOperation(error, error, error)

    with pytest.raises(DataUnavailable) as exc_info:
        asyncio.run(with_retry(operation, "load", retry_context))

    assert operation.calls == 3
    assert exc_info.value.cause is error
    assert exc_info.value.operation == "load"
    assert delays == [1.0, 2.0]


def test_expired_session_is_renewed(retry_context, delays):
    operation = FlakyOperation(AuthExpired("token expired", status=401))
    assert asyncio.run(with_retry(operation, "load", retry_context)) == "ok"
    assert operation.calls == 2
    assert retry_context.auth.clears == 1
    assert retry_context.auth.logins == 1


def test_not_found_is_not_retried(retry_context, delays):
    operation = FlakyOperation(RecordNotFound("missing", status=404))
    with pytest.raises(RecordNotFound):
        asyncio.run(with_retry(operation, "load", retry_context))
    assert operation.calls == 1
    assert delays == []

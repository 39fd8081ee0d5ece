"""
Повтор чтения данных при сетевых ошибках и истёкшей сессии
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..exceptions import AuthExpired, BackendError, DataUnavailable, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(operation: Callable[[], Awaitable[T]], name: str, context) -> T:
    """
    Выполнить операцию чтения с повторами

    - TransientNetworkError: пауза attempt * base_delay и новая попытка
    - AuthExpired: сброс сессии, повторный вход, новая попытка
    - после всех попыток: DataUnavailable
    Остальные ошибки пробрасываются сразу.

    Только для чтения: переходы статусов не повторяются
    (повтор захвата записи может отнять её у другого пользователя).
    """
    max_attempts = context.settings.RETRY_MAX_ATTEMPTS
    base_delay = context.settings.RETRY_BASE_DELAY_SECONDS
    last_error = None

    for attempt in range(1, max_attempts + 1):
        try:
            await context.ensure_authenticated()
            return await operation()
        except AuthExpired as e:
            last_error = e
            logger.warning(f"{name}: сессия недействительна (попытка {attempt}/{max_attempts}), повторный вход")
            context.auth.clear()
            try:
                await context.auth.authenticate()
            except BackendError as auth_error:
                last_error = auth_error
                logger.error(f"{name}: повторный вход не удался: {auth_error}")
        except TransientNetworkError as e:
            last_error = e
            logger.warning(f"{name}: ошибка сети (попытка {attempt}/{max_attempts}): {e}")

        if attempt < max_attempts:
            delay = base_delay * attempt
            logger.info(f"Повтор {name} через {delay:.1f} с")
            await asyncio.sleep(delay)

    logger.error(f"{name}: все {max_attempts} попытки неудачны")
    raise DataUnavailable(name, last_error) from last_error

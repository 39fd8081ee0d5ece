"""
Контекст бэкенда: хранилище записей, realtime-подписки и авторизация

Передаётся явно в каждый сервис вместо глобального клиента.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from sqlalchemy.orm import sessionmaker

from ..config import Settings, get_settings
from ..database import SessionLocal
from ..schemas import ChangeEvent
from .local_store import LocalAuth, LocalChangeFeed, LocalStore
from .pocketbase import PocketBaseAuth, PocketBaseClient, PocketBaseRealtime

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Хранилище записей (коллекции PocketBase)"""

    async def get_list(self, collection: str, page: int = 1, per_page: int = 30,
                       filter: str = "", sort: str = "", expand: str = "") -> Dict[str, Any]: ...

    async def get_full_list(self, collection: str, filter: str = "", sort: str = "",
                            expand: str = "", batch: int = 200) -> List[Dict[str, Any]]: ...

    async def get_one(self, collection: str, record_id: str, expand: str = "") -> Dict[str, Any]: ...

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, collection: str, record_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, collection: str, record_id: str) -> None: ...


class ChangeFeed(Protocol):
    """Realtime-события по коллекциям"""

    async def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None: ...

    async def unsubscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None: ...

    async def close(self) -> None: ...


class AuthProvider(Protocol):
    """Сессия пользователя"""

    token: str
    model: Optional[Dict[str, Any]]

    def is_valid(self) -> bool: ...

    async def authenticate(self) -> Dict[str, Any]: ...

    def clear(self) -> None: ...


class BackendContext:
    """Всё, что нужно сервисам для работы с бэкендом"""

    def __init__(
        self,
        store: RecordStore,
        feed: ChangeFeed,
        auth: AuthProvider,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None
    ):
        self.store = store
        self.feed = feed
        self.auth = auth
        self.settings = settings or get_settings()
        self.http = http

    async def ensure_authenticated(self) -> None:
        """Войти, если сессия недействительна"""
        if not self.auth.is_valid():
            logger.info("Сессия недействительна, выполняем вход")
            await self.auth.authenticate()

    @property
    def current_user_id(self) -> str:
        model = self.auth.model or {}
        return model.get("id") or ""

    async def close(self) -> None:
        await self.feed.close()
        if self.http is not None:
            await self.http.aclose()


def create_local_context(session_factory: sessionmaker, settings: Optional[Settings] = None) -> BackendContext:
    """Контекст поверх локальной БД"""
    feed = LocalChangeFeed()
    return BackendContext(
        store=LocalStore(session_factory, feed),
        feed=feed,
        auth=LocalAuth(),
        settings=settings
    )


def create_pocketbase_context(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> BackendContext:
    """Контекст поверх сервера PocketBase"""
    http = httpx.AsyncClient(
        base_url=settings.POCKETBASE_URL,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        transport=transport
    )
    auth = PocketBaseAuth(
        http,
        settings.POCKETBASE_EMAIL,
        settings.POCKETBASE_PASSWORD,
        settings.POCKETBASE_AUTH_COLLECTION
    )
    return BackendContext(
        store=PocketBaseClient(http, auth),
        feed=PocketBaseRealtime(
            http,
            auth,
            reconnect_delay=settings.REALTIME_RECONNECT_SECONDS,
            connect_timeout=settings.REQUEST_TIMEOUT_SECONDS
        ),
        auth=auth,
        settings=settings,
        http=http
    )


def create_context(settings: Optional[Settings] = None) -> BackendContext:
    """Контекст по настройке BACKEND"""
    settings = settings or get_settings()
    if settings.BACKEND == "pocketbase":
        logger.info(f"Бэкенд: PocketBase {settings.POCKETBASE_URL}")
        return create_pocketbase_context(settings)

    logger.info(f"Бэкенд: локальная БД {settings.DATABASE_URL}")
    return create_local_context(SessionLocal, settings)

"""
Клиент PocketBase

REST API коллекций, вход по паролю и realtime-подписки (server-sent events).
Все запросы идут через один httpx.AsyncClient.
"""
import asyncio
import base64
import json
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..exceptions import AuthExpired, BackendError, RecordNotFound, TransientNetworkError
from ..schemas import ChangeEvent

logger = logging.getLogger(__name__)

ADMINS_COLLECTION = "_admins"


def error_from_response(response: httpx.Response) -> BackendError:
    """Ответ с ошибкой -> исключение нужного типа"""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or response.reason_phrase or "Ошибка бэкенда"
    status = response.status_code
    data = body.get("data")

    if status in (401, 403):
        return AuthExpired(message, status=status, data=data)
    if status == 404:
        return RecordNotFound(message, status=status, data=data)
    if status == 429 or status >= 500:
        return TransientNetworkError(message, status=status, data=data)
    return BackendError(message, status=status, data=data)


def token_expired(token: str, leeway: int = 30) -> bool:
    """Проверка exp в JWT без проверки подписи"""
    try:
        payload = token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError):
        return True
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return True
    return exp - leeway <= time.time()


async def send(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs
) -> Any:
    """Запрос к PocketBase с приведением ошибок"""
    try:
        response = await http.request(method, path, headers=headers, **kwargs)
    except httpx.TransportError as e:
        raise TransientNetworkError(f"{method} {path}: {e}") from e

    if response.is_error:
        raise error_from_response(response)
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


class PocketBaseAuth:
    """Сессия пользователя PocketBase (токен + модель пользователя)"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        email: Optional[str],
        password: Optional[str],
        collection: str = "users"
    ):
        self.http = http
        self.email = email
        self.password = password
        self.collection = collection
        self.token = ""
        self.model: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return bool(self.token) and not token_expired(self.token)

    def headers(self) -> Dict[str, str]:
        return {"Authorization": self.token} if self.token else {}

    async def authenticate(self) -> Dict[str, Any]:
        """Вход по email/паролю"""
        if not self.email or not self.password:
            raise AuthExpired("Учётные данные PocketBase не заданы", status=401)

        if self.collection == ADMINS_COLLECTION:
            path = "/api/admins/auth-with-password"
        else:
            path = f"/api/collections/{self.collection}/auth-with-password"

        logger.info(f"Вход в PocketBase ({self.collection})")
        data = await send(
            self.http,
            "POST",
            path,
            json={"identity": self.email, "password": self.password}
        )
        self.token = data["token"]
        self.model = data.get("record") or data.get("admin")
        logger.info("Вход выполнен")
        return self.model

    def clear(self) -> None:
        logger.info("Сессия PocketBase сброшена")
        self.token = ""
        self.model = None


class PocketBaseClient:
    """CRUD по коллекциям PocketBase"""

    def __init__(self, http: httpx.AsyncClient, auth: PocketBaseAuth):
        self.http = http
        self.auth = auth

    async def _send(self, method: str, path: str, **kwargs) -> Any:
        return await send(self.http, method, path, headers=self.auth.headers(), **kwargs)

    async def get_list(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 30,
        filter: str = "",
        sort: str = "",
        expand: str = ""
    ) -> Dict[str, Any]:
        params = {"page": page, "perPage": per_page}
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort
        if expand:
            params["expand"] = expand
        return await self._send("GET", f"/api/collections/{collection}/records", params=params)

    async def get_full_list(
        self,
        collection: str,
        filter: str = "",
        sort: str = "",
        expand: str = "",
        batch: int = 200
    ) -> List[Dict[str, Any]]:
        items = []
        page = 1
        while True:
            result = await self.get_list(collection, page, batch, filter, sort, expand)
            items.extend(result.get("items", []))
            if page >= result.get("totalPages", 0):
                return items
            page += 1

    async def get_one(self, collection: str, record_id: str, expand: str = "") -> Dict[str, Any]:
        params = {"expand": expand} if expand else None
        return await self._send("GET", f"/api/collections/{collection}/records/{record_id}", params=params)

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("POST", f"/api/collections/{collection}/records", json=data)

    async def update(self, collection: str, record_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("PATCH", f"/api/collections/{collection}/records/{record_id}", json=data)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._send("DELETE", f"/api/collections/{collection}/records/{record_id}")


# ==================== Realtime ====================

async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """Разбор потока server-sent events -> (event, data)"""
    event = "message"
    data: List[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event = "message"
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class PocketBaseRealtime:
    """
    Realtime-подписки PocketBase

    GET /api/realtime открывает SSE-поток, первое событие PB_CONNECT
    содержит clientId; список топиков отправляется POST /api/realtime.
    После обрыва соединение восстанавливается, подписки отправляются заново.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        auth: PocketBaseAuth,
        reconnect_delay: float = 3.0,
        connect_timeout: float = 10.0
    ):
        self.http = http
        self.auth = auth
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.callbacks: Dict[str, List[Callable[[ChangeEvent], None]]] = {}
        self.client_id: Optional[str] = None
        self._connected = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def topics(self) -> List[str]:
        return [f"{collection}/*" for collection in self.callbacks]

    async def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None:
        callbacks = self.callbacks.setdefault(collection, [])
        callbacks.append(callback)
        logger.info(f"Подписка на {collection}")
        if self._task is None or self._task.done():
            self._connected.clear()
            self._task = asyncio.create_task(self._run())
            try:
                await asyncio.wait_for(self._connected.wait(), self.connect_timeout)
            except asyncio.TimeoutError as e:
                raise TransientNetworkError("Realtime: нет подключения") from e
        elif self.client_id and len(callbacks) == 1:
            # без clientId топики отправятся после переподключения (PB_CONNECT)
            await self._submit()

    async def unsubscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None:
        """Снять одну подписку; топик уходит, когда у коллекции не осталось подписчиков"""
        callbacks = self.callbacks.get(collection)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if callbacks:
            return
        del self.callbacks[collection]
        logger.info(f"Отписка от {collection}")
        if not self.callbacks:
            await self.close()
        elif self.client_id:
            await self._submit()

    async def close(self) -> None:
        self.callbacks.clear()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.client_id = None
        self._connected.clear()

    async def _submit(self) -> None:
        await send(
            self.http,
            "POST",
            "/api/realtime",
            headers=self.auth.headers(),
            json={"clientId": self.client_id, "subscriptions": self.topics}
        )

    async def _run(self) -> None:
        while True:
            try:
                async with self.http.stream("GET", "/api/realtime", timeout=None) as response:
                    if response.is_error:
                        await response.aread()
                        raise error_from_response(response)
                    async for event, data in iter_sse(response.aiter_lines()):
                        await self._handle(event, data)
                logger.warning("Realtime: поток закрыт сервером")
            except httpx.TransportError as e:
                logger.warning(f"Realtime: обрыв соединения: {e}")
            except BackendError as e:
                logger.error(f"Realtime: ошибка подключения: {e}")
            self.client_id = None
            await asyncio.sleep(self.reconnect_delay)

    async def _handle(self, event: str, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError:
            logger.warning(f"Realtime: некорректные данные события {event}")
            return

        if event == "PB_CONNECT":
            self.client_id = payload.get("clientId")
            logger.info(f"Realtime: подключено, clientId={self.client_id}")
            await self._submit()
            self._connected.set()
            return

        self.dispatch(event, payload)

    def dispatch(self, topic: str, payload: Dict[str, Any]) -> None:
        """Передать событие топика 'collection/*' подписчикам коллекции"""
        collection = topic.split("/", 1)[0]
        callbacks = self.callbacks.get(collection)
        if not callbacks:
            return
        try:
            change = ChangeEvent(collection=collection, action=payload.get("action"), record=payload.get("record") or {})
        except ValidationError:
            logger.warning(f"Realtime: неизвестное событие {topic}: {payload}")
            return
        for callback in list(callbacks):
            callback(change)

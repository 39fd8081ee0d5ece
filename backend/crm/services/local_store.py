"""
Локальное хранилище записей на SQLAlchemy

Реализует тот же интерфейс, что и клиент PocketBase: коллекции, фильтры,
сортировка, expand связей и realtime-события внутри процесса.
Используется для разработки, админ-панели и тестов.
"""
import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Boolean, Integer, and_, or_
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import BackendError, RecordNotFound
from ..models import COLLECTION_MODELS
from ..schemas import ChangeEvent, SLOTS, APPOINTMENTS, CUSTOMERS, TEAMS, COMPANIES, CATEGORIES
from .filters import FilterSyntaxError, parse_filter, parse_sort

logger = logging.getLogger(__name__)

# Поле связи -> коллекция, в которую оно указывает
RELATIONS = {
    SLOTS: {"team": TEAMS, "category": CATEGORIES, "company": COMPANIES, "appointments": APPOINTMENTS},
    APPOINTMENTS: {"slot": SLOTS, "customer": CUSTOMERS},
}

READONLY_FIELDS = ("id", "created", "updated", "expand")


def format_timestamp(value: datetime) -> str:
    """Формат дат PocketBase: '2025-03-10 09:15:00.123Z'"""
    return value.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] + "Z"


def to_record(obj) -> Dict[str, Any]:
    """SQLAlchemy объект -> запись PocketBase"""
    record = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.name)
        if isinstance(value, datetime):
            value = format_timestamp(value)
        elif value is None:
            # PocketBase не отдаёт null: пустое значение по типу поля
            if column.name == "appointments":
                value = []
            elif isinstance(column.type, Boolean):
                value = False
            elif isinstance(column.type, Integer):
                value = 0
            else:
                value = ""
        record[column.name] = value
    return record


class LocalChangeFeed:
    """Realtime-события внутри процесса"""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable[[ChangeEvent], None]]] = {}

    async def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None:
        self.subscribers.setdefault(collection, []).append(callback)
        logger.info(f"Подписка на {collection}")

    async def unsubscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> None:
        """Снять одну подписку; остальные подписчики коллекции остаются"""
        callbacks = self.subscribers.get(collection)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            del self.subscribers[collection]
        logger.info(f"Отписка от {collection}")

    def publish(self, collection: str, action: str, record: Dict[str, Any]) -> None:
        callbacks = self.subscribers.get(collection)
        if not callbacks:
            return
        event = ChangeEvent(collection=collection, action=action, record=record)
        # подписчик может отписаться прямо в обработчике
        for callback in list(callbacks):
            callback(event)

    async def close(self) -> None:
        self.subscribers.clear()


class LocalAuth:
    """Авторизация локального режима: один пользователь, вход всегда успешен"""

    def __init__(self, user: Optional[Dict[str, Any]] = None):
        self.user = user or {"id": "localagent00001", "email": "agent@localhost", "username": "agent"}
        self.token = ""
        self.model: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return bool(self.token)

    async def authenticate(self) -> Dict[str, Any]:
        self.token = "local"
        self.model = dict(self.user)
        return self.model

    def clear(self) -> None:
        self.token = ""
        self.model = None


class LocalStore:
    """Хранилище коллекций в локальной БД"""

    def __init__(self, session_factory: sessionmaker, feed: Optional[LocalChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed

    # ==================== Вспомогательные ====================

    def _model(self, collection: str):
        model = COLLECTION_MODELS.get(collection)
        if model is None:
            raise RecordNotFound(f"Коллекция {collection} не найдена", status=404)
        return model

    def _column(self, model, field: str):
        column = model.__table__.columns.get(field)
        if column is None:
            raise BackendError(f"Неизвестное поле {field} в {model.__tablename__}", status=400)
        return getattr(model, field)

    def _condition(self, model, node):
        kind = node[0]
        if kind == "and":
            return and_(*(self._condition(model, child) for child in node[1]))
        if kind == "or":
            return or_(*(self._condition(model, child) for child in node[1]))

        _, field, op, value = node
        column = self._column(model, field)
        if op == "=":
            return column.is_(None) if value is None else column == value
        if op == "!=":
            return column.is_not(None) if value is None else column != value
        if op == "~":
            return column.ilike(f"%{value}%")
        if op == "!~":
            return ~column.ilike(f"%{value}%")
        if op == ">":
            return column > value
        if op == ">=":
            return column >= value
        if op == "<":
            return column < value
        return column <= value

    def _query(self, db: Session, collection: str, filter: str = "", sort: str = ""):
        model = self._model(collection)
        query = db.query(model)
        try:
            node = parse_filter(filter)
        except FilterSyntaxError as e:
            raise BackendError(str(e), status=400) from e
        if node is not None:
            query = query.filter(self._condition(model, node))
        order = []
        for field, descending in parse_sort(sort):
            column = self._column(model, field)
            order.append(column.desc() if descending else column.asc())
        # Стабильный порядок при одинаковых значениях
        order.append(model.id.asc())
        return query.order_by(*order)

    def _expand(self, db: Session, collection: str, record: Dict[str, Any], expand: str) -> Dict[str, Any]:
        relations = RELATIONS.get(collection, {})
        expanded = {}
        for name in (part.strip() for part in (expand or "").split(",")):
            # вложенный expand (appointments.customer) не поддерживается
            target = relations.get(name)
            if not name or target is None:
                continue
            value = record.get(name)
            model = COLLECTION_MODELS[target]
            if isinstance(value, list):
                related = db.query(model).filter(model.id.in_(value)).all() if value else []
                by_id = {obj.id: to_record(obj) for obj in related}
                items = [by_id[item_id] for item_id in value if item_id in by_id]
                if items:
                    expanded[name] = items
            elif value:
                obj = db.get(model, value)
                if obj is not None:
                    expanded[name] = to_record(obj)
        if expanded:
            record["expand"] = expanded
        return record

    def _publish(self, collection: str, action: str, record: Dict[str, Any]) -> None:
        if self.feed is not None:
            self.feed.publish(collection, action, record)

    # ==================== Чтение ====================

    async def get_list(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 30,
        filter: str = "",
        sort: str = "",
        expand: str = ""
    ) -> Dict[str, Any]:
        """Страница записей коллекции (формат ответа PocketBase)"""
        db = self.session_factory()
        try:
            query = self._query(db, collection, filter, sort)
            total = query.count()
            objects = query.offset((page - 1) * per_page).limit(per_page).all()
            items = [self._expand(db, collection, to_record(obj), expand) for obj in objects]
            return {
                "page": page,
                "perPage": per_page,
                "totalItems": total,
                "totalPages": math.ceil(total / per_page) if per_page else 0,
                "items": items
            }
        finally:
            db.close()

    async def get_full_list(
        self,
        collection: str,
        filter: str = "",
        sort: str = "",
        expand: str = "",
        batch: int = 200
    ) -> List[Dict[str, Any]]:
        """Все записи коллекции постранично"""
        items = []
        page = 1
        while True:
            result = await self.get_list(collection, page, batch, filter, sort, expand)
            items.extend(result["items"])
            if page >= result["totalPages"]:
                return items
            page += 1

    async def get_one(self, collection: str, record_id: str, expand: str = "") -> Dict[str, Any]:
        db = self.session_factory()
        try:
            obj = db.get(self._model(collection), record_id)
            if obj is None:
                raise RecordNotFound(f"Запись {collection}/{record_id} не найдена", status=404)
            return self._expand(db, collection, to_record(obj), expand)
        finally:
            db.close()

    # ==================== Запись ====================

    def _values(self, model, data: Dict[str, Any]) -> Dict[str, Any]:
        columns = model.__table__.columns
        return {
            key: value for key, value in data.items()
            if key in columns and key not in READONLY_FIELDS
        }

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(collection)
        db = self.session_factory()
        try:
            obj = model(**self._values(model, data))
            if data.get("id"):
                obj.id = data["id"]
            db.add(obj)
            db.commit()
            db.refresh(obj)
            record = to_record(obj)
        finally:
            db.close()
        self._publish(collection, "create", record)
        return record

    async def update(self, collection: str, record_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(collection)
        db = self.session_factory()
        try:
            obj = db.get(model, record_id)
            if obj is None:
                raise RecordNotFound(f"Запись {collection}/{record_id} не найдена", status=404)
            for key, value in self._values(model, data).items():
                setattr(obj, key, value)
            db.commit()
            db.refresh(obj)
            record = to_record(obj)
        finally:
            db.close()
        self._publish(collection, "update", record)
        return record

    async def delete(self, collection: str, record_id: str) -> None:
        model = self._model(collection)
        db = self.session_factory()
        try:
            obj = db.get(model, record_id)
            if obj is None:
                raise RecordNotFound(f"Запись {collection}/{record_id} не найдена", status=404)
            record = to_record(obj)
            db.delete(obj)
            db.commit()
        finally:
            db.close()
        self._publish(collection, "delete", record)

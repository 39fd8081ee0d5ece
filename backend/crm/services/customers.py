"""
Сервис клиентов (лидов)
"""
import logging
from typing import Any, Dict, List

from ..schemas import CUSTOMERS, Customer
from . import filters
from .context import BackendContext
from .retry import with_retry

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("surname", "tel", "email", "location")


class CustomerService:
    """Список, поиск и изменение клиентов"""

    def __init__(self, context: BackendContext):
        self.context = context

    async def get_customers(self, page: int = 1, per_page: int = 100) -> List[Customer]:
        """Клиенты, новые первыми"""
        result = await with_retry(
            lambda: self.context.store.get_list(CUSTOMERS, page, per_page, sort="-created"),
            "get_customers",
            self.context
        )
        return [Customer.from_record(record) for record in result["items"]]

    async def search_customers(self, term: str, per_page: int = 100) -> List[Customer]:
        """Поиск по фамилии, телефону, email и городу; пустой запрос - все клиенты"""
        if not term or not term.strip():
            return await self.get_customers(per_page=per_page)

        result = await with_retry(
            lambda: self.context.store.get_list(
                CUSTOMERS,
                1,
                per_page,
                filter=filters.any_field_contains(SEARCH_FIELDS, term.strip()),
                sort="-created"
            ),
            "search_customers",
            self.context
        )
        logger.info(f"Поиск клиентов '{term}': найдено {len(result['items'])}")
        return [Customer.from_record(record) for record in result["items"]]

    async def get_customer(self, customer_id: str) -> Customer:
        if not customer_id:
            raise ValueError("Не указан ID клиента")
        record = await with_retry(
            lambda: self.context.store.get_one(CUSTOMERS, customer_id),
            f"get_customer({customer_id})",
            self.context
        )
        return Customer.from_record(record)

    async def create_customer(self, data: Dict[str, Any]) -> Customer:
        await self.context.ensure_authenticated()
        payload = dict(data)
        if not payload.get("agent") and self.context.current_user_id:
            payload["agent"] = self.context.current_user_id
        record = await self.context.store.create(CUSTOMERS, payload)
        logger.info(f"Создан клиент {record['id']}")
        return Customer.from_record(record)

    async def update_customer(self, customer_id: str, data: Dict[str, Any]) -> Customer:
        await self.context.ensure_authenticated()
        record = await self.context.store.update(CUSTOMERS, customer_id, data)
        return Customer.from_record(record)

    async def delete_customer(self, customer_id: str) -> None:
        await self.context.ensure_authenticated()
        await self.context.store.delete(CUSTOMERS, customer_id)
        logger.info(f"Клиент {customer_id} удалён")

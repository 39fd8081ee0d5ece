"""
Доски контроля качества

Две канбан-доски двигают клиента по своим статусам:
- qc_on: предварительный контроль
- qc_final: финальный контроль (только клиенты с qc_on = Aranacak)

Каждая доска пишет только своё поле и никогда не трогает поле другой доски.
"""
import logging
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidQcStatus
from ..schemas import CUSTOMERS, QC_FINAL_OPTIONS, QC_ON_OPTIONS, ChangeEvent, Customer
from .context import BackendContext
from .retry import with_retry

logger = logging.getLogger(__name__)

QC_BOARDS = {
    "qc_on": QC_ON_OPTIONS,
    "qc_final": QC_FINAL_OPTIONS,
}

# На финальный контроль попадают клиенты с этим статусом qc_on
QC_FINAL_ENTRY_STATUS = "Aranacak"

# Успешный итог финального контроля (очки агента в рейтинге)
QC_FINAL_SUCCESS_STATUS = "Okey"


def status_counts(customers: List[Customer]) -> Dict[str, Dict[str, int]]:
    """Число клиентов в каждой колонке обеих досок"""
    counts = {field: {status: 0 for status in options} for field, options in QC_BOARDS.items()}
    for customer in customers:
        for field, field_counts in counts.items():
            status = getattr(customer, field)
            if status in field_counts:
                field_counts[status] += 1
    return counts


def agent_leaderboard(customers: List[Customer]) -> List[Dict[str, Any]]:
    """Агенты по числу клиентов с qc_final = Okey, лучшие первыми"""
    scores: Dict[str, int] = {}
    for customer in customers:
        if customer.agent and customer.qc_final == QC_FINAL_SUCCESS_STATUS:
            scores[customer.agent] = scores.get(customer.agent, 0) + 1
    ranking = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [{"agent": agent, "okey": count} for agent, count in ranking]


async def load_summary(context: BackendContext) -> Dict[str, Any]:
    """Сводка для главной страницы: счётчики досок и рейтинг агентов"""
    records = await with_retry(
        lambda: context.store.get_full_list(CUSTOMERS, sort="-created"),
        "load_qc_summary",
        context
    )
    customers = [Customer.from_record(record) for record in records]
    return {
        "total": len(customers),
        "counts": status_counts(customers),
        "leaderboard": agent_leaderboard(customers)
    }


class QcBoard:
    """Доска одного этапа контроля качества"""

    def __init__(self, context: BackendContext, field: str):
        if field not in QC_BOARDS:
            raise ValueError(f"Неизвестная доска контроля качества: {field}")
        self.context = context
        self.field = field
        self.options = QC_BOARDS[field]
        self.customers: List[Customer] = []
        self._subscribed = False

    def accepts(self, customer: Customer) -> bool:
        """Показывается ли клиент на этой доске"""
        if self.field == "qc_final":
            return customer.qc_on == QC_FINAL_ENTRY_STATUS
        return True

    async def load(self) -> List[Customer]:
        records = await with_retry(
            lambda: self.context.store.get_full_list(CUSTOMERS, sort="-created"),
            f"load_qc_board({self.field})",
            self.context
        )
        customers = [Customer.from_record(record) for record in records]
        self.customers = [customer for customer in customers if self.accepts(customer)]
        logger.info(f"Доска {self.field}: {len(self.customers)} клиентов")
        return self.customers

    def columns(self) -> Dict[str, List[Customer]]:
        """Клиенты по колонкам (в порядке статусов доски)"""
        result = {status: [] for status in self.options}
        for customer in self.customers:
            status = getattr(customer, self.field)
            if status in result:
                result[status].append(customer)
        return result

    def _find(self, customer_id: str) -> Optional[Customer]:
        return next((customer for customer in self.customers if customer.id == customer_id), None)

    async def move(self, customer_id: str, new_status: str) -> Customer:
        """
        Переместить клиента в колонку new_status

        В запросе только поле этой доски. Переход не повторяется при ошибке.
        """
        if new_status not in self.options:
            raise InvalidQcStatus(self.field, new_status)

        current = self._find(customer_id)
        if current is not None and getattr(current, self.field) == new_status:
            return current

        await self.context.ensure_authenticated()
        record = await self.context.store.update(CUSTOMERS, customer_id, {self.field: new_status})
        logger.info(f"Клиент {customer_id}: {self.field} -> {new_status}")

        if current is None:
            return Customer.from_record(record)

        # Локально меняется только поле доски
        moved = current.model_copy(update={self.field: new_status})
        self.customers = [moved if customer.id == customer_id else customer for customer in self.customers]
        return moved

    def apply_event(self, event: ChangeEvent) -> None:
        """Применить событие коллекции customers к списку доски"""
        if event.collection != CUSTOMERS:
            return

        if event.action == "delete":
            self.customers = [c for c in self.customers if c.id != event.record_id]
            return

        customer = Customer.from_record(event.record)
        exists = self._find(customer.id) is not None

        if not self.accepts(customer):
            if exists:
                self.customers = [c for c in self.customers if c.id != customer.id]
            return

        if exists:
            self.customers = [customer if c.id == customer.id else c for c in self.customers]
        else:
            self.customers = [customer] + self.customers

    async def start(self) -> List[Customer]:
        """Загрузить доску и подписаться на изменения клиентов"""
        if not self._subscribed:
            await self.context.ensure_authenticated()
            await self.context.feed.subscribe(CUSTOMERS, self.apply_event)
            self._subscribed = True
        return await self.load()

    async def stop(self) -> None:
        if self._subscribed:
            await self.context.feed.unsubscribe(CUSTOMERS, self.apply_event)
            self._subscribed = False

"""
Сервис слотов: создание с генерацией записей, каскадное удаление
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import BackendError, SlotGenerationError
from ..schemas import APPOINTMENTS, SLOTS, Appointment, AppointmentStatus, Slot
from . import filters
from .context import BackendContext
from .retry import with_retry

logger = logging.getLogger(__name__)

SLOT_EXPAND = "team,category,company,appointments"


def parse_clock(value: str) -> int:
    """'11:30' -> минуты от начала дня"""
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        raise SlotGenerationError(f"Неверный формат времени {value!r}, ожидается HH:MM")
    return parsed.hour * 60 + parsed.minute


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def generate_appointment_times(start: str, end: str, space: int) -> List[str]:
    """
    Время записей слота: start + i * space для i в [0, n),
    n = floor((end - start) / space)

    Пример: 11:00-19:00 с шагом 120 -> 11:00, 13:00, 15:00, 17:00
    Слот без записей - ошибка конфигурации, а не пустой слот.
    """
    start_minutes = parse_clock(start)
    end_minutes = parse_clock(end)

    if not isinstance(space, int) or space <= 0:
        raise SlotGenerationError(f"Интервал записей должен быть больше нуля: {space!r}")
    if end_minutes <= start_minutes:
        raise SlotGenerationError(f"Конец слота {end} должен быть позже начала {start}")

    count = (end_minutes - start_minutes) // space
    if count <= 0:
        raise SlotGenerationError(
            f"Окно {start}-{end} короче интервала {space} мин: записи не помещаются"
        )

    return [format_clock(start_minutes + i * space) for i in range(count)]


class SlotService:
    """Слоты и их записи"""

    def __init__(self, context: BackendContext):
        self.context = context

    async def get_slots(
        self,
        date: Optional[str] = None,
        team: Optional[str] = None,
        company: Optional[str] = None,
        category: Optional[str] = None,
        deaktif: Optional[bool] = None,
        search: Optional[str] = None
    ) -> List[Slot]:
        """Список слотов с фильтрами"""
        conditions = []
        if date:
            conditions.append(filters.eq("date", date))
        if team:
            conditions.append(filters.eq("team", team))
        if company:
            conditions.append(filters.eq("company", company))
        if category:
            conditions.append(filters.eq("category", category))
        if deaktif is not None:
            conditions.append(filters.eq("deaktif", deaktif))
        if search:
            conditions.append(filters.contains("name", search))

        records = await with_retry(
            lambda: self.context.store.get_full_list(
                SLOTS,
                filter=filters.join_all(*conditions),
                sort="-date,-created",
                expand="team,category,company",
                batch=self.context.settings.SLOT_PAGE_SIZE
            ),
            "get_slots",
            self.context
        )
        return [Slot.from_record(record) for record in records]

    async def get_slot(self, slot_id: str) -> Slot:
        record = await with_retry(
            lambda: self.context.store.get_one(SLOTS, slot_id, expand=SLOT_EXPAND),
            f"get_slot({slot_id})",
            self.context
        )
        return Slot.from_record(record)

    async def get_slot_appointments(self, slot_id: str) -> List[Appointment]:
        records = await with_retry(
            lambda: self.context.store.get_full_list(
                APPOINTMENTS,
                filter=filters.eq("slot", slot_id),
                sort="created",
                expand="customer"
            ),
            f"get_slot_appointments({slot_id})",
            self.context
        )
        appointments = [Appointment.from_record(record) for record in records]
        return sorted(appointments, key=lambda appointment: appointment.time)

    async def create_slot(self, data: Dict[str, Any]) -> Slot:
        """
        Создать слот и по записи на каждый шаг space

        Бэкенд не поддерживает транзакции: если запись не создалась,
        ошибка пробрасывается, уже созданные записи остаются.
        """
        times = generate_appointment_times(data.get("start"), data.get("end"), data.get("space"))

        await self.context.ensure_authenticated()
        slot_data = dict(data)
        slot_data["deaktif"] = bool(data.get("deaktif", False))
        slot_data["appointments"] = []
        record = await self.context.store.create(SLOTS, slot_data)
        slot_id = record["id"]
        logger.info(f"Создан слот {slot_id} ({data.get('name')} {data.get('date')} {data.get('start')}-{data.get('end')})")

        appointment_ids = []
        for appointment_time in times:
            appointment = await self.context.store.create(APPOINTMENTS, {
                "title": f"{data.get('name', '')} - {appointment_time}",
                "slot": slot_id,
                "date": data.get("date", ""),
                "time": appointment_time,
                "status": AppointmentStatus.EMPTY.value,
                "customer": ""
            })
            appointment_ids.append(appointment["id"])

        await self.context.store.update(SLOTS, slot_id, {"appointments": appointment_ids})
        logger.info(f"Для слота {slot_id} создано записей: {len(appointment_ids)}")

        return await self.get_slot(slot_id)

    async def update_slot(self, slot_id: str, data: Dict[str, Any]) -> Slot:
        """Изменить поля слота (записи не пересоздаются)"""
        if {"start", "end", "space"} & data.keys():
            current = await self.get_slot(slot_id)
            generate_appointment_times(
                data.get("start", current.start),
                data.get("end", current.end),
                data.get("space", current.space)
            )

        await self.context.ensure_authenticated()
        await self.context.store.update(SLOTS, slot_id, data)
        logger.info(f"Слот {slot_id} обновлён: {sorted(data.keys())}")
        return await self.get_slot(slot_id)

    async def delete_slot(self, slot_id: str) -> int:
        """
        Удалить слот вместе с записями

        Каскад выполняется на клиенте: ошибка удаления отдельной записи
        логируется и не прерывает удаление, ошибка удаления слота
        пробрасывается. Возвращает число удалённых записей.
        """
        appointments = await self.get_slot_appointments(slot_id)

        await self.context.ensure_authenticated()
        deleted = 0
        for appointment in appointments:
            try:
                await self.context.store.delete(APPOINTMENTS, appointment.id)
                deleted += 1
            except BackendError as e:
                logger.error(f"Не удалось удалить запись {appointment.id} слота {slot_id}: {e}")

        await self.context.store.delete(SLOTS, slot_id)
        logger.info(f"Слот {slot_id} удалён, записей удалено: {deleted}/{len(appointments)}")
        return deleted

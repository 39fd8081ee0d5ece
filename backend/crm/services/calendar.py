"""
Календарь: слоты и записи видимого диапазона дат

SlotReconciler держит в памяти слоты и записи выбранного диапазона
и поддерживает их актуальными по realtime-событиям:

    событие -> окно debounce -> одна полная перезагрузка -> замена view

События не применяются по полям: в них нет раскрытых связей (клиент
в записи), поэтому любое событие только сигнализирует о перезагрузке.

Жизненный цикл записи:

    empty --claim--> edit --assign_customer--> okay
    edit --release--> empty
    любой --empty_appointment--> empty

Захват (edit) - рекомендательная блокировка: статус читается и
записывается двумя запросами, бэкенд не делает compare-and-swap,
поэтому два одновременных захвата могут оба пройти.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import AlreadyClaimed, CrmError, InvalidTransition, MissingCustomer
from ..schemas import APPOINTMENTS, SLOTS, Appointment, AppointmentStatus, ChangeEvent, Slot
from . import filters
from .context import BackendContext
from .retry import with_retry

logger = logging.getLogger(__name__)

WATCHED_COLLECTIONS = (SLOTS, APPOINTMENTS)

# Сколько ID слотов помещается в один фильтр запроса записей
SLOT_IDS_PER_QUERY = 50


def week_range(day: date, week_starts_on: int = 0) -> Tuple[date, date]:
    """Неделя, в которую попадает день (по умолчанию Пн-Вс)"""
    offset = (day.weekday() - week_starts_on) % 7
    start = day - timedelta(days=offset)
    return start, start + timedelta(days=6)


def parse_day(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


class CalendarView(BaseModel):
    """Снимок календаря для отображения"""
    range_start: date
    range_end: date
    slots: List[Slot] = Field(default_factory=list)
    appointments: List[Appointment] = Field(default_factory=list)
    error: Optional[str] = None
    loaded_at: Optional[datetime] = None

    def days(self) -> List[date]:
        count = (self.range_end - self.range_start).days + 1
        return [self.range_start + timedelta(days=i) for i in range(count)]

    def slots_for_day(self, day: date, category: Optional[str] = None) -> List[Slot]:
        """Слоты дня, по времени начала; category - фильтр категории"""
        key = day.isoformat()
        result = [
            slot for slot in self.slots
            if slot.date == key and (not category or slot.category == category)
        ]
        return sorted(result, key=lambda slot: (slot.start, slot.name))

    def appointments_for_slot(self, slot_id: str) -> List[Appointment]:
        result = [appointment for appointment in self.appointments if appointment.slot == slot_id]
        return sorted(result, key=lambda appointment: (appointment.time, appointment.created, appointment.id))

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in AppointmentStatus}
        for appointment in self.appointments:
            counts[appointment.status.value] += 1
        return counts


class SlotReconciler:
    """Слоты и записи видимого диапазона, синхронизированные с бэкендом"""

    def __init__(self, context: BackendContext, debounce: Optional[float] = None):
        self.context = context
        self.debounce = context.settings.RELOAD_DEBOUNCE_SECONDS if debounce is None else debounce
        self.range_start: Optional[date] = None
        self.range_end: Optional[date] = None
        self.view: Optional[CalendarView] = None
        self.reload_count = 0
        self.events_received = 0
        self._reload_lock = asyncio.Lock()
        self._pending_reload: Optional[asyncio.TimerHandle] = None
        self._reload_tasks: Set[asyncio.Task] = set()
        self._subscribed = False

    # ==================== Загрузка ====================

    async def load_view(self, range_start: date, range_end: date) -> List[Slot]:
        """
        Слоты с датой в [range_start, range_end]

        Бэкенд ненадёжно фильтрует по полю date, поэтому загружаются
        все слоты и фильтруются здесь. При росте числа слотов фильтр
        нужно перенести в запрос.
        """
        records = await with_retry(
            lambda: self.context.store.get_full_list(
                SLOTS,
                sort="-date,-created",
                expand="team,category,company",
                batch=self.context.settings.SLOT_PAGE_SIZE
            ),
            "load_view",
            self.context
        )

        slots = []
        for record in records:
            slot = Slot.from_record(record)
            day = parse_day(slot.date)
            if day is None:
                logger.debug(f"Слот {slot.id}: некорректная дата {slot.date!r}, пропущен")
                continue
            if range_start <= day <= range_end:
                slots.append(slot)

        logger.info(f"Слотов в диапазоне {range_start} - {range_end}: {len(slots)} из {len(records)}")
        return slots

    async def load_appointments_for_slots(self, slot_ids: List[str]) -> List[Appointment]:
        """Записи указанных слотов (с раскрытым клиентом)"""
        if not slot_ids:
            return []

        appointments = []
        for i in range(0, len(slot_ids), SLOT_IDS_PER_QUERY):
            chunk = slot_ids[i:i + SLOT_IDS_PER_QUERY]
            records = await with_retry(
                lambda: self.context.store.get_full_list(
                    APPOINTMENTS,
                    filter=filters.one_of("slot", chunk),
                    sort="created",
                    expand="customer",
                    batch=self.context.settings.APPOINTMENT_PAGE_SIZE
                ),
                "load_appointments_for_slots",
                self.context
            )
            appointments.extend(Appointment.from_record(record) for record in records)
        return appointments

    async def reload(self, range_start: Optional[date] = None, range_end: Optional[date] = None) -> CalendarView:
        """
        Полная перезагрузка активного диапазона

        Одновременно выполняется не более одной перезагрузки. При ошибке
        остаётся последний успешно загруженный view с заполненным error.
        """
        if range_start is not None:
            self.range_start = range_start
            self.range_end = range_end or range_start
        if self.range_start is None:
            raise ValueError("Диапазон календаря не задан")

        async with self._reload_lock:
            requested = (self.range_start, self.range_end)
            self.reload_count += 1
            try:
                slots = await self.load_view(*requested)
                appointments = await self.load_appointments_for_slots([slot.id for slot in slots])
            except (CrmError, ValidationError) as e:
                self._keep_last_good(requested, str(e))
                raise

            if requested != (self.range_start, self.range_end):
                logger.info("Диапазон изменился во время загрузки, результат отброшен")
                return self.view

            self.view = CalendarView(
                range_start=requested[0],
                range_end=requested[1],
                slots=slots,
                appointments=appointments,
                loaded_at=datetime.now()
            )
            logger.info(f"Календарь обновлён: {len(slots)} слотов, {len(appointments)} записей")
            return self.view

    def _keep_last_good(self, requested: Tuple[date, date], error: str) -> None:
        logger.error(f"Ошибка загрузки календаря: {error}")
        if self.view is None:
            self.view = CalendarView(range_start=requested[0], range_end=requested[1], error=error)
        else:
            self.view = self.view.model_copy(update={"error": error})

    # ==================== Realtime ====================

    async def start(self, range_start: date, range_end: date) -> CalendarView:
        """Подписаться на изменения и загрузить диапазон"""
        self.range_start, self.range_end = range_start, range_end
        if not self._subscribed:
            await self.context.ensure_authenticated()
            for collection in WATCHED_COLLECTIONS:
                await self.context.feed.subscribe(collection, self.on_change_event)
            self._subscribed = True
        return await self.reload()

    async def stop(self) -> None:
        """Отписаться и отменить отложенную перезагрузку"""
        if self._pending_reload is not None:
            self._pending_reload.cancel()
            self._pending_reload = None
        tasks = [task for task in self._reload_tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._reload_tasks.clear()
        if self._subscribed:
            for collection in WATCHED_COLLECTIONS:
                await self.context.feed.unsubscribe(collection, self.on_change_event)
            self._subscribed = False

    async def set_range(self, range_start: date, range_end: date) -> CalendarView:
        """Сменить видимый диапазон: старая подписка снимается"""
        await self.stop()
        return await self.start(range_start, range_end)

    def on_change_event(self, event: ChangeEvent) -> None:
        """Любое событие - сигнал перезагрузки; события в окне debounce объединяются"""
        if event.collection not in WATCHED_COLLECTIONS:
            return
        self.events_received += 1
        logger.debug(f"Событие {event.action} {event.collection}/{event.record_id}")

        loop = asyncio.get_running_loop()
        if self._pending_reload is not None:
            self._pending_reload.cancel()
        self._pending_reload = loop.call_later(self.debounce, self._start_reload)

    def _start_reload(self) -> None:
        self._pending_reload = None
        task = asyncio.ensure_future(self._reload_after_events())
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    async def _reload_after_events(self) -> None:
        if self.range_start is None:
            return
        try:
            await self.reload()
        except (CrmError, ValidationError):
            logger.warning("Перезагрузка по событию не удалась, показан последний загруженный календарь")

    async def wait_until_settled(self) -> None:
        """Дождаться завершения отложенных перезагрузок"""
        while True:
            running = [task for task in self._reload_tasks if not task.done()]
            if running:
                await asyncio.wait(running)
            elif self._pending_reload is not None:
                await asyncio.sleep(self.debounce)
            else:
                return

    # ==================== Статусы записей ====================

    async def _get_appointment(self, appointment_id: str) -> Appointment:
        await self.context.ensure_authenticated()
        record = await self.context.store.get_one(APPOINTMENTS, appointment_id)
        return Appointment.from_record(record)

    async def _set_fields(self, appointment_id: str, data: Dict[str, str]) -> Appointment:
        await self.context.ensure_authenticated()
        record = await self.context.store.update(APPOINTMENTS, appointment_id, data)
        updated = Appointment.from_record(record)
        self._apply_locally(updated)
        return updated

    def _apply_locally(self, updated: Appointment) -> None:
        """Оптимистично заменить запись в текущем view"""
        if self.view is None:
            return
        appointments = []
        for appointment in self.view.appointments:
            if appointment.id == updated.id:
                # раскрытый клиент не приходит в ответе на update
                expand = updated.expand or (appointment.expand if updated.customer == appointment.customer else {})
                appointment = updated.model_copy(update={"expand": expand})
            appointments.append(appointment)
        self.view = self.view.model_copy(update={"appointments": appointments})

    async def claim_appointment(self, appointment_id: str) -> Appointment:
        """empty -> edit; AlreadyClaimed, если запись уже редактируется"""
        current = await self._get_appointment(appointment_id)
        if current.status == AppointmentStatus.EDIT:
            raise AlreadyClaimed(appointment_id)
        if current.status != AppointmentStatus.EMPTY:
            raise InvalidTransition(appointment_id, current.status.value, AppointmentStatus.EDIT.value)

        updated = await self._set_fields(appointment_id, {"status": AppointmentStatus.EDIT.value})
        logger.info(f"Запись {appointment_id} захвачена для редактирования")
        return updated

    async def assign_customer(self, appointment_id: str, customer_id: str) -> Appointment:
        """edit -> okay с назначением клиента"""
        if not customer_id:
            raise MissingCustomer(appointment_id)

        current = await self._get_appointment(appointment_id)
        if current.status != AppointmentStatus.EDIT:
            raise InvalidTransition(appointment_id, current.status.value, AppointmentStatus.OKAY.value)

        data = {"customer": customer_id, "status": AppointmentStatus.OKAY.value}
        if self.context.current_user_id:
            data["agent"] = self.context.current_user_id
        updated = await self._set_fields(appointment_id, data)
        logger.info(f"Запись {appointment_id}: назначен клиент {customer_id}")
        return updated

    async def release_appointment(self, appointment_id: str) -> Appointment:
        """edit -> empty (диалог закрыт без сохранения); для empty ничего не делает"""
        current = await self._get_appointment(appointment_id)
        if current.status == AppointmentStatus.EMPTY:
            return current
        if current.status != AppointmentStatus.EDIT:
            raise InvalidTransition(appointment_id, current.status.value, AppointmentStatus.EMPTY.value)

        updated = await self._set_fields(appointment_id, {"status": AppointmentStatus.EMPTY.value, "customer": ""})
        logger.info(f"Запись {appointment_id} освобождена")
        return updated

    async def empty_appointment(self, appointment_id: str) -> Appointment:
        """Сброс записи в empty из любого статуса, клиент удаляется"""
        updated = await self._set_fields(appointment_id, {"status": AppointmentStatus.EMPTY.value, "customer": ""})
        logger.info(f"Запись {appointment_id} очищена")
        return updated

"""
Наблюдение за календарём в терминале

Подписывается на изменения слотов и записей и печатает неделю после
каждой перезагрузки.

Запуск:
  python watch_calendar.py               - текущая неделя
  python watch_calendar.py 2025-03-10    - неделя с указанной датой
"""
import asyncio
import logging
import sys
from datetime import date

from crm.config import get_settings
from crm.exceptions import CrmError
from crm.services.calendar import CalendarView, SlotReconciler, parse_day, week_range
from crm.services.context import create_context

settings = get_settings()

STATUS_MARKS = {"empty": "·", "edit": "✎", "okay": "✔"}


def print_view(view: CalendarView):
    print(f"\n=== {view.range_start} - {view.range_end} ===")
    if view.error:
        print(f"⚠️ {view.error} (показаны последние загруженные данные)")
    for day in view.days():
        slots = view.slots_for_day(day)
        if not slots:
            continue
        print(day.strftime("%a %d.%m"))
        for slot in slots:
            marks = " ".join(
                f"{appointment.time}{STATUS_MARKS.get(appointment.status.value, '?')}"
                for appointment in view.appointments_for_slot(slot.id)
            )
            print(f"  {slot.start}-{slot.end} {slot.name}: {marks}")
    print(f"Статусы: {view.status_counts()}")


async def main():
    day = parse_day(sys.argv[1]) if len(sys.argv) > 1 else date.today()
    if day is None:
        print("Неверная дата, используйте YYYY-MM-DD")
        return

    context = create_context(settings)
    reconciler = SlotReconciler(context)
    range_start, range_end = week_range(day, settings.WEEK_STARTS_ON)

    print(f"[CALENDAR] Бэкенд: {settings.BACKEND}, неделя {range_start} - {range_end}")
    try:
        await reconciler.start(range_start, range_end)
    except CrmError as e:
        print(f"[CALENDAR] Ошибка запуска: {e}")
        await context.close()
        return

    shown = None
    try:
        while True:
            if reconciler.view is not shown:
                shown = reconciler.view
                print_view(shown)
            await asyncio.sleep(1)
    finally:
        await reconciler.stop()
        await context.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[CALENDAR] Остановлено")

"""
Скрипт инициализации локальной базы данных
Создаёт таблицы и добавляет справочники, тестовых клиентов и слоты
"""
import asyncio
import sys
from datetime import date, timedelta

sys.path.insert(0, '.')

from crm.database import SessionLocal, init_db
from crm.models import AppointmentCategory, Company, Customer, Team
from crm.services.context import create_local_context
from crm.services.slots import SlotService

INITIAL_TEAMS = ["Team Nord", "Team Süd"]
INITIAL_COMPANIES = ["Solar Plus GmbH"]
INITIAL_CATEGORIES = ["Beratung", "Besichtigung"]

INITIAL_CUSTOMERS = [
    {"surname": "Müller", "tel": "+491701234567", "location": "Berlin", "postal_code": "10115"},
    {"surname": "Schmidt", "tel": "+491709876543", "location": "Hamburg", "postal_code": "20095"},
    {"surname": "Weber", "tel": "+491705554433", "location": "Köln", "postal_code": "50667", "qc_on": "Aranacak"},
]

# Слоты на ближайшие рабочие дни: (название, начало, конец, интервал)
INITIAL_SLOTS = [
    ("Vormittag", "09:00", "13:00", 60),
    ("Nachmittag", "14:00", "19:00", 120),
]
SLOT_DAYS = 5


def init_references():
    """Добавить команды, компании и категории"""
    db = SessionLocal()
    try:
        if db.query(Team).count() > 0:
            print("Справочники уже заполнены, пропускаем...")
            return

        for name in INITIAL_TEAMS:
            db.add(Team(name=name))
        for name in INITIAL_COMPANIES:
            db.add(Company(name=name))
        for name in INITIAL_CATEGORIES:
            db.add(AppointmentCategory(name=name))

        db.commit()
        print(f"Добавлено: {len(INITIAL_TEAMS)} команд, {len(INITIAL_COMPANIES)} компаний, {len(INITIAL_CATEGORIES)} категорий")
    finally:
        db.close()


def init_customers():
    """Добавить тестовых клиентов"""
    db = SessionLocal()
    try:
        existing = db.query(Customer).count()
        if existing > 0:
            print(f"Клиенты уже существуют ({existing} шт.), пропускаем...")
            return

        for customer_data in INITIAL_CUSTOMERS:
            db.add(Customer(**customer_data))

        db.commit()
        print(f"Добавлено {len(INITIAL_CUSTOMERS)} клиентов!")
    finally:
        db.close()


async def init_slots():
    """Создать слоты с записями через сервис слотов"""
    context = create_local_context(SessionLocal)
    service = SlotService(context)

    if await service.get_slots():
        print("Слоты уже существуют, пропускаем...")
        return

    db = SessionLocal()
    try:
        team = db.query(Team).first()
        category = db.query(AppointmentCategory).first()
        company = db.query(Company).first()
    finally:
        db.close()

    day = date.today()
    created = 0
    while created < SLOT_DAYS * len(INITIAL_SLOTS):
        day += timedelta(days=1)
        if day.weekday() >= 5:
            continue
        for name, start, end, space in INITIAL_SLOTS:
            slot = await service.create_slot({
                "name": name,
                "date": day.isoformat(),
                "start": start,
                "end": end,
                "space": space,
                "team": team.id if team else "",
                "category": category.id if category else "",
                "company": company.id if company else ""
            })
            print(f"  {slot.date} {slot.name} {slot.start}-{slot.end}: {len(slot.appointments)} записей")
            created += 1

    print(f"Добавлено {created} слотов!")


if __name__ == "__main__":
    print("Создание таблиц...")
    init_db()
    print("Таблицы созданы!")

    init_references()
    init_customers()
    asyncio.run(init_slots())
    print("\nИнициализация завершена!")
    print("Теперь можно запустить сервер: python -m uvicorn crm.main:app --reload")

"""
Pydantic схемы записей бэкенда
Записи приходят как dict (формат PocketBase) и приводятся к схемам
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

# Коллекции бэкенда
SLOTS = "appointments_slots"
APPOINTMENTS = "appointments"
CUSTOMERS = "customers"
TEAMS = "teams"
COMPANIES = "companies"
CATEGORIES = "appointments_category"


class AppointmentStatus(str, Enum):
    """Статусы записи"""
    EMPTY = "empty"  # свободна
    EDIT = "edit"  # захвачена для редактирования
    OKAY = "okay"  # клиент назначен


# Статусы досок контроля качества (в порядке колонок)
QC_ON_OPTIONS = ("Yeni", "Aranacak", "Rausgefallen", "Rausgefallen WP")
QC_FINAL_OPTIONS = ("Yeni", "Okey", "Rausgefallen", "Rausgefallen WP", "Neuleger", "Neuleger WP")
QC_DEFAULT_STATUS = "Yeni"

# Числовые поля клиента
CUSTOMER_NUMBER_FIELDS = ("home_people_number", "age")


def record_day(value: Any) -> str:
    """'2025-03-10 00:00:00.000Z' -> '2025-03-10'"""
    if not value:
        return ""
    text = str(value).strip()
    for separator in (" ", "T"):
        if separator in text:
            text = text.split(separator)[0]
    return text[:10]


def title_time(title: str) -> str:
    """Время из заголовка записи вида 'Слот - 11:00'"""
    if " - " not in title:
        return ""
    candidate = title.rsplit(" - ", 1)[1].strip()
    if len(candidate) == 5 and candidate[2] == ":":
        return candidate
    return ""


class Slot(BaseModel):
    """Слот"""
    id: str
    name: str = ""
    date: str = ""  # YYYY-MM-DD
    start: str = ""  # HH:MM
    end: str = ""  # HH:MM
    capacity: int = 0
    space: int = 0
    category: str = ""
    company: str = ""
    team: str = ""
    deaktif: bool = False
    appointments: List[str] = Field(default_factory=list)
    created: str = ""
    updated: str = ""
    expand: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Slot":
        return cls(
            id=record["id"],
            name=record.get("name") or "",
            date=record_day(record.get("date")),
            start=record.get("start") or "",
            end=record.get("end") or "",
            capacity=record.get("capacity") or 0,
            space=record.get("space") or 0,
            category=record.get("category") or "",
            company=record.get("company") or "",
            team=record.get("team") or "",
            deaktif=bool(record.get("deaktif")),
            appointments=list(record.get("appointments") or []),
            created=record.get("created") or "",
            updated=record.get("updated") or "",
            expand=record.get("expand") or {}
        )


class Appointment(BaseModel):
    """Запись"""
    id: str
    slot: str = ""
    title: str = ""
    description: str = ""
    date: str = ""
    time: str = ""
    status: AppointmentStatus = AppointmentStatus.EMPTY
    customer: str = ""
    agent: str = ""
    created: str = ""
    updated: str = ""
    expand: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Appointment":
        title = record.get("title") or ""
        return cls(
            id=record["id"],
            slot=record.get("slot") or "",
            title=title,
            description=record.get("description") or "",
            date=record_day(record.get("date")),
            time=record.get("time") or title_time(title),
            status=record.get("status") or AppointmentStatus.EMPTY,
            customer=record.get("customer") or "",
            agent=record.get("agent") or "",
            created=record.get("created") or "",
            updated=record.get("updated") or "",
            expand=record.get("expand") or {}
        )

    @property
    def customer_name(self) -> str:
        customer = self.expand.get("customer") or {}
        return customer.get("surname") or ""


class Customer(BaseModel):
    """Клиент (лид)"""
    id: str
    surname: str = ""
    tel: str = ""
    home_tel: str = ""
    email: str = ""
    home_people_number: int = 0
    age: int = 0
    location: str = ""
    street: str = ""
    postal_code: str = ""
    who_is_customer: str = ""
    roof_type: str = ""
    what_talked: str = ""
    roof: str = ""
    note: str = ""
    qc_on: str = QC_DEFAULT_STATUS
    qc_final: str = QC_DEFAULT_STATUS
    agent: str = ""
    created: str = ""
    updated: str = ""

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Customer":
        data = {
            key: value for key, value in record.items()
            if key in cls.model_fields and value is not None
            # пустое число из старых записей считается незаполненным
            and not (key in CUSTOMER_NUMBER_FIELDS and value == "")
        }
        data.setdefault("qc_on", QC_DEFAULT_STATUS)
        data.setdefault("qc_final", QC_DEFAULT_STATUS)
        if not data["qc_on"]:
            data["qc_on"] = QC_DEFAULT_STATUS
        if not data["qc_final"]:
            data["qc_final"] = QC_DEFAULT_STATUS
        return cls(**data)


class ChangeEvent(BaseModel):
    """Событие realtime-подписки"""
    collection: str
    action: Literal["create", "update", "delete"]
    record: Dict[str, Any]

    @property
    def record_id(self) -> Optional[str]:
        return self.record.get("id")

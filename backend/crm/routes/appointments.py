"""
API роутер календаря и статусов записей
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..config import get_settings
from ..dependencies import get_context, get_reconciler
from ..schemas import Appointment, Slot
from ..services.calendar import CalendarView, SlotReconciler, week_range
from ..services.context import BackendContext

settings = get_settings()
router = APIRouter(prefix="/api", tags=["appointments"])


# ==================== Pydantic Schemas ====================

class AppointmentResponse(BaseModel):
    id: str
    slot: str
    title: str
    date: str
    time: str
    status: str
    customer: str
    customer_name: str = ""
    agent: str = ""

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            slot=appointment.slot,
            title=appointment.title,
            date=appointment.date,
            time=appointment.time,
            status=appointment.status.value,
            customer=appointment.customer,
            customer_name=appointment.customer_name,
            agent=appointment.agent
        )


class CalendarSlotResponse(BaseModel):
    id: str
    name: str
    start: str  # "HH:MM"
    end: str  # "HH:MM"
    space: int
    category: str
    team: str
    company: str
    deaktif: bool
    appointments: List[AppointmentResponse]


class CalendarDayResponse(BaseModel):
    date: str  # "YYYY-MM-DD"
    slots: List[CalendarSlotResponse]


class CalendarResponse(BaseModel):
    range_start: str
    range_end: str
    days: List[CalendarDayResponse]
    status_counts: Dict[str, int]
    error: Optional[str] = None
    loaded_at: Optional[datetime] = None


class AssignCustomerRequest(BaseModel):
    customer_id: str = Field(..., max_length=15)


# ==================== Helpers ====================

def slot_response(view: CalendarView, slot: Slot) -> CalendarSlotResponse:
    return CalendarSlotResponse(
        id=slot.id,
        name=slot.name,
        start=slot.start,
        end=slot.end,
        space=slot.space,
        category=slot.category,
        team=slot.team,
        company=slot.company,
        deaktif=slot.deaktif,
        appointments=[
            AppointmentResponse.from_appointment(appointment)
            for appointment in view.appointments_for_slot(slot.id)
        ]
    )


def calendar_response(view: CalendarView, category: Optional[str] = None) -> CalendarResponse:
    days = [
        CalendarDayResponse(
            date=day.isoformat(),
            slots=[slot_response(view, slot) for slot in view.slots_for_day(day, category)]
        )
        for day in view.days()
    ]
    return CalendarResponse(
        range_start=view.range_start.isoformat(),
        range_end=view.range_end.isoformat(),
        days=days,
        status_counts=view.status_counts(),
        error=view.error,
        loaded_at=view.loaded_at
    )


# ==================== Endpoints ====================

@router.get("/calendar", response_model=CalendarResponse)
async def get_calendar(
    date_str: Optional[str] = Query(None, alias="date", description="Любой день недели, YYYY-MM-DD"),
    category: Optional[str] = Query(None, description="ID категории"),
    context: BackendContext = Depends(get_context),
    reconciler: SlotReconciler = Depends(get_reconciler)
):
    """Неделя календаря: дни -> слоты -> записи"""
    if date_str:
        try:
            target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            raise HTTPException(status_code=400, detail="Неверный формат даты. Используйте YYYY-MM-DD")
    else:
        target_date = date.today()

    range_start, range_end = week_range(target_date, settings.WEEK_STARTS_ON)

    # Текущая неделя обновляется по событиям, остальные загружаются по запросу
    if reconciler.view is not None and (reconciler.range_start, reconciler.range_end) == (range_start, range_end):
        view = reconciler.view
    else:
        view = await SlotReconciler(context).reload(range_start, range_end)

    return calendar_response(view, category)


@router.post("/appointments/{appointment_id}/claim", response_model=AppointmentResponse)
async def claim_appointment(appointment_id: str, reconciler: SlotReconciler = Depends(get_reconciler)):
    """Захватить свободную запись для редактирования"""
    appointment = await reconciler.claim_appointment(appointment_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/assign", response_model=AppointmentResponse)
async def assign_customer(
    appointment_id: str,
    data: AssignCustomerRequest,
    reconciler: SlotReconciler = Depends(get_reconciler)
):
    """Назначить клиента захваченной записи"""
    appointment = await reconciler.assign_customer(appointment_id, data.customer_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/release", response_model=AppointmentResponse)
async def release_appointment(appointment_id: str, reconciler: SlotReconciler = Depends(get_reconciler)):
    """Отпустить запись без сохранения"""
    appointment = await reconciler.release_appointment(appointment_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/empty", response_model=AppointmentResponse)
async def empty_appointment(appointment_id: str, reconciler: SlotReconciler = Depends(get_reconciler)):
    """Очистить запись"""
    appointment = await reconciler.empty_appointment(appointment_id)
    return AppointmentResponse.from_appointment(appointment)

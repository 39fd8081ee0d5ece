"""
API роутер слотов
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..dependencies import get_context
from ..schemas import Slot
from ..services.context import BackendContext
from ..services.slots import SlotService, generate_appointment_times
from .appointments import AppointmentResponse

router = APIRouter(prefix="/api", tags=["slots"])


# ==================== Pydantic Schemas ====================

class SlotCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")  # YYYY-MM-DD
    start: str = Field(..., pattern=r"^\d{2}:\d{2}$")  # HH:MM
    end: str = Field(..., pattern=r"^\d{2}:\d{2}$")  # HH:MM
    space: int = Field(..., gt=0)  # минуты между записями
    capacity: int = Field(1, ge=1)
    category: str = ""
    company: str = ""
    team: str = ""
    deaktif: bool = False


class SlotUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    start: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    space: Optional[int] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, ge=1)
    category: Optional[str] = None
    company: Optional[str] = None
    team: Optional[str] = None
    deaktif: Optional[bool] = None


class SlotResponse(BaseModel):
    id: str
    name: str
    date: str
    start: str
    end: str
    capacity: int
    space: int
    category: str
    company: str
    team: str
    deaktif: bool
    appointments: List[str]
    created: str = ""

    class Config:
        from_attributes = True


class SlotPreviewResponse(BaseModel):
    times: List[str]
    count: int


class SlotDeleteResponse(BaseModel):
    success: bool
    deleted_appointments: int


def slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse.model_validate(slot)


# ==================== Endpoints ====================

@router.get("/slots", response_model=List[SlotResponse])
async def get_slots(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    team: Optional[str] = Query(None),
    company: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    deaktif: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Поиск по названию"),
    context: BackendContext = Depends(get_context)
):
    """Список слотов"""
    slots = await SlotService(context).get_slots(date, team, company, category, deaktif, search)
    return [slot_response(slot) for slot in slots]


@router.get("/slots/preview", response_model=SlotPreviewResponse)
async def preview_slot(
    start: str = Query(..., pattern=r"^\d{2}:\d{2}$"),
    end: str = Query(..., pattern=r"^\d{2}:\d{2}$"),
    space: int = Query(..., gt=0)
):
    """Время записей, которые будут созданы для окна (без сохранения)"""
    times = generate_appointment_times(start, end, space)
    return SlotPreviewResponse(times=times, count=len(times))


@router.get("/slots/{slot_id}", response_model=SlotResponse)
async def get_slot(slot_id: str, context: BackendContext = Depends(get_context)):
    slot = await SlotService(context).get_slot(slot_id)
    return slot_response(slot)


@router.get("/slots/{slot_id}/appointments", response_model=List[AppointmentResponse])
async def get_slot_appointments(slot_id: str, context: BackendContext = Depends(get_context)):
    """Записи слота по времени"""
    appointments = await SlotService(context).get_slot_appointments(slot_id)
    return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]


@router.post("/slots", response_model=SlotResponse, status_code=201)
async def create_slot(data: SlotCreate, context: BackendContext = Depends(get_context)):
    """Создать слот и его записи"""
    slot = await SlotService(context).create_slot(data.model_dump())
    return slot_response(slot)


@router.patch("/slots/{slot_id}", response_model=SlotResponse)
async def update_slot(slot_id: str, data: SlotUpdate, context: BackendContext = Depends(get_context)):
    slot = await SlotService(context).update_slot(slot_id, data.model_dump(exclude_unset=True, exclude_none=True))
    return slot_response(slot)


@router.delete("/slots/{slot_id}", response_model=SlotDeleteResponse)
async def delete_slot(slot_id: str, context: BackendContext = Depends(get_context)):
    """Удалить слот вместе с записями"""
    deleted = await SlotService(context).delete_slot(slot_id)
    return SlotDeleteResponse(success=True, deleted_appointments=deleted)

"""
API роутер клиентов
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..dependencies import get_context
from ..services.context import BackendContext
from ..services.customers import CustomerService

router = APIRouter(prefix="/api", tags=["customers"])


# ==================== Pydantic Schemas ====================

class CustomerCreate(BaseModel):
    surname: str = Field(..., min_length=1, max_length=100)
    tel: str = Field("", max_length=30)
    home_tel: str = Field("", max_length=30)
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


class CustomerUpdate(BaseModel):
    surname: Optional[str] = Field(None, min_length=1, max_length=100)
    tel: Optional[str] = Field(None, max_length=30)
    home_tel: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = None
    home_people_number: Optional[int] = None
    age: Optional[int] = None
    location: Optional[str] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    who_is_customer: Optional[str] = None
    roof_type: Optional[str] = None
    what_talked: Optional[str] = None
    roof: Optional[str] = None
    note: Optional[str] = None


class CustomerResponse(BaseModel):
    id: str
    surname: str
    tel: str
    home_tel: str
    email: str
    home_people_number: int
    age: int
    location: str
    street: str
    postal_code: str
    who_is_customer: str
    roof_type: str
    what_talked: str
    roof: str
    note: str
    qc_on: str
    qc_final: str
    agent: str
    created: str

    class Config:
        from_attributes = True


# ==================== Endpoints ====================

@router.get("/customers", response_model=List[CustomerResponse])
async def get_customers(
    search: Optional[str] = Query(None, description="Фамилия, телефон, email или город"),
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=500),
    context: BackendContext = Depends(get_context)
):
    """Список клиентов (с поиском)"""
    service = CustomerService(context)
    if search:
        customers = await service.search_customers(search, per_page=per_page)
    else:
        customers = await service.get_customers(page, per_page)
    return [CustomerResponse.model_validate(customer) for customer in customers]


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(customer_id: str, context: BackendContext = Depends(get_context)):
    customer = await CustomerService(context).get_customer(customer_id)
    return CustomerResponse.model_validate(customer)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(data: CustomerCreate, context: BackendContext = Depends(get_context)):
    customer = await CustomerService(context).create_customer(data.model_dump())
    return CustomerResponse.model_validate(customer)


@router.patch("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(customer_id: str, data: CustomerUpdate, context: BackendContext = Depends(get_context)):
    """Изменить данные клиента (статусы QC меняются через доски)"""
    customer = await CustomerService(context).update_customer(customer_id, data.model_dump(exclude_unset=True, exclude_none=True))
    return CustomerResponse.model_validate(customer)


@router.delete("/customers/{customer_id}")
async def delete_customer(customer_id: str, context: BackendContext = Depends(get_context)):
    await CustomerService(context).delete_customer(customer_id)
    return {"success": True}

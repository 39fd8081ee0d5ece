"""
API роутер досок контроля качества
"""
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_context
from ..services.context import BackendContext
from ..services.qc import QC_BOARDS, QcBoard, load_summary
from .customers import CustomerResponse

router = APIRouter(prefix="/api/qc", tags=["qc"])


class QcMoveRequest(BaseModel):
    status: str


class QcBoardResponse(BaseModel):
    field: str
    statuses: List[str]
    columns: Dict[str, List[CustomerResponse]]


class LeaderboardEntry(BaseModel):
    agent: str
    okey: int


class QcSummaryResponse(BaseModel):
    total: int
    counts: Dict[str, Dict[str, int]]
    leaderboard: List[LeaderboardEntry]


def get_board(field: str, context: BackendContext) -> QcBoard:
    if field not in QC_BOARDS:
        raise HTTPException(status_code=404, detail=f"Доска {field} не найдена")
    return QcBoard(context, field)


@router.get("/summary", response_model=QcSummaryResponse)
async def get_qc_summary(context: BackendContext = Depends(get_context)):
    """Счётчики статусов обеих досок и рейтинг агентов по Okey"""
    return await load_summary(context)


@router.get("/{field}", response_model=QcBoardResponse)
async def get_qc_board(field: str, context: BackendContext = Depends(get_context)):
    """Клиенты доски по колонкам статусов"""
    board = get_board(field, context)
    await board.load()
    columns = {
        status: [CustomerResponse.model_validate(customer) for customer in customers]
        for status, customers in board.columns().items()
    }
    return QcBoardResponse(field=field, statuses=list(board.options), columns=columns)


@router.post("/{field}/{customer_id}", response_model=CustomerResponse)
async def move_customer(
    field: str,
    customer_id: str,
    data: QcMoveRequest,
    context: BackendContext = Depends(get_context)
):
    """Перенести клиента в другую колонку доски"""
    board = get_board(field, context)
    await board.load()
    customer = await board.move(customer_id, data.status)
    return CustomerResponse.model_validate(customer)

from fastapi import APIRouter, Depends

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.money import Money
from finanzas.models.schemas import MonthlyTrend, Summary
from finanzas.services.analytics import AnalyticsService
from finanzas.storage.base import Storage

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/summary", response_model=Summary)
async def get_summary(user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)):
    return await AnalyticsService(storage).get_summary(user_id)


@router.get("/expenses-by-category", response_model=dict[str, Money])
async def get_expenses_by_category(user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)):
    return await AnalyticsService(storage).get_expenses_by_category(user_id)


@router.get("/monthly-trends", response_model=list[MonthlyTrend])
async def get_monthly_trends(user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)):
    return await AnalyticsService(storage).get_monthly_trends(user_id)

from datetime import date as DateType
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from mealvision.api.auth import get_current_user
from mealvision.crud.meal_analysis import to_stored_analysis
from mealvision.database import get_db
from mealvision.schemas.analysis import DailyCalories, NutrientSummary, StoredAnalysis
from mealvision.services.stats_service import StatsService

router = APIRouter(prefix="/stats", tags=["Stats"])


class PeriodSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    period: str
    summary: NutrientSummary


@router.get("/summary", response_model=NutrientSummary)
def get_summary(
    start: DateType = Query(..., alias="from"),
    end: DateType = Query(..., alias="to"),
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """Nutrient totals over local days [from, to]."""
    return StatsService(db, tz).sum_by_date_range(current_user, start, end)


@router.get("/period", response_model=PeriodSummary)
def get_period_summary(
    period: str = Query("day"),
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """Totals for the current day, week (Sun-Sat) or month."""
    stats = StatsService(db, tz)
    start, end = stats.period_range(period)
    return PeriodSummary(period=period, summary=stats.sum_by_date_range(current_user, start, end))


@router.get("/weekly", response_model=List[DailyCalories])
def get_weekly_overview(
    date: Optional[DateType] = None,
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """Daily calorie totals Sunday..Saturday for the week containing `date` (default today)."""
    return StatsService(db, tz).weekly_totals(current_user, date)


@router.get("/today", response_model=List[StoredAnalysis])
def get_todays_meals(
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    rows = StatsService(db, tz).todays_meals(current_user)
    return [to_stored_analysis(row) for row in rows]

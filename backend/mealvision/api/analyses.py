import logging
from datetime import date as DateType
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from mealvision.api.auth import get_current_user
from mealvision.api.request_utils import form_json, read_form, read_upload
from mealvision.crud.meal_analysis import get_analysis, list_analyses, save_analysis, to_nutrition_record, to_stored_analysis
from mealvision.database import get_db
from mealvision.exceptions import InputValidationError, InvalidDateRange
from mealvision.schemas.analysis import IntakeRatio, NutritionRecord, StoredAnalysis
from mealvision.services.stats_service import StatsService, daily_intake_ratios
from mealvision.services.storage_service import SupabaseStorageService, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyses", tags=["Analyses"])


@router.post("", response_model=StoredAnalysis, status_code=status.HTTP_201_CREATED)
async def store_analysis(
    request: Request,
    db: Session = Depends(get_db),
    storage: SupabaseStorageService = Depends(get_storage_service),
    current_user: str = Depends(get_current_user),
):
    """
    Keep an analysis: multipart 'file' (the analyzed photo) and 'analysis'
    (the NutritionRecord JSON returned by /analyze).
    """
    form = await read_form(request)
    image_bytes, filename, content_type = await read_upload(form, "file")
    data = form_json(form, "analysis", required=True)
    if not isinstance(data, dict):
        raise InputValidationError("analysis must be a JSON object")
    try:
        record = NutritionRecord.model_validate(data)
    except ValidationError as e:
        raise InputValidationError(f"Invalid analysis: {e.errors()[0]['msg']}")

    db_analysis = save_analysis(db, current_user, record, image_bytes, filename, content_type, storage)
    return to_stored_analysis(db_analysis)


@router.get("", response_model=List[StoredAnalysis])
def get_analyses(
    start: Optional[DateType] = Query(None, alias="from"),
    end: Optional[DateType] = Query(None, alias="to"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """History of stored analyses, newest first, optionally limited to local days [from, to]."""
    if start is not None and end is not None and start > end:
        raise InvalidDateRange(f"from {start} is after to {end}")
    stats = StatsService(db, tz)
    start_utc = stats.day_bounds(start, start)[0] if start else None
    end_utc = stats.day_bounds(end, end)[1] if end else None
    rows = list_analyses(db, current_user, start=start_utc, end=end_utc, limit=limit)
    return [to_stored_analysis(row) for row in rows]


@router.get("/{analysis_id}", response_model=StoredAnalysis)
def get_one_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    return to_stored_analysis(get_analysis(db, current_user, analysis_id))


@router.get("/{analysis_id}/intake", response_model=List[IntakeRatio])
def get_intake_ratios(
    analysis_id: int,
    gender: str = Query("female"),
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """Per-nutrient share of the recommended daily intake covered by this meal."""
    record = to_nutrition_record(get_analysis(db, current_user, analysis_id))
    return daily_intake_ratios(record, gender)

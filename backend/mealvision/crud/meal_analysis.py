import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from mealvision.exceptions import AnalysisNotFound, PersistenceError
from mealvision.models.meal_analysis import MealAnalysis
from mealvision.schemas.analysis import NutritionRecord, StoredAnalysis
from mealvision.services.storage_service import SupabaseStorageService
from mealvision.utils.image_utils import normalize_mime_type

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "meal.jpg"


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_storage_path(user_id: str, filename: Optional[str], now: Optional[datetime] = None) -> str:
    """'{user_id}/{epoch_millis}_{sanitized filename}'"""
    now = now or datetime.now(timezone.utc)
    epoch_millis = int(now.timestamp() * 1000)
    safe_name = secure_filename(filename or "") or DEFAULT_FILENAME
    return f"{user_id}/{epoch_millis}_{safe_name}"


def save_analysis(
    db: Session,
    user_id: str,
    record: NutritionRecord,
    image_bytes: bytes,
    filename: Optional[str],
    content_type: str,
    storage: SupabaseStorageService,
) -> MealAnalysis:
    """
    Uploads the photo, then inserts one meal_analyses row pointing at it.

    Upload failure raises StorageError and nothing is inserted. If the insert
    fails after a successful upload the blob is left in place (logged as an
    orphan) and PersistenceError is raised.
    """
    mime = normalize_mime_type(content_type)
    path = build_storage_path(user_id, filename)
    image_url = storage.upload(path, image_bytes, mime)

    nutrients = record.nutrients
    db_analysis = MealAnalysis(
        user_id=user_id,
        detected_dishes=list(record.detected_dishes),
        food_items=list(record.food_items),
        calories=record.calories,
        portions=dict(record.portions),
        nutrients={
            "protein": nutrients.protein,
            "fat": nutrients.fat,
            "carbs": nutrients.carbs,
            "vitamins": nutrients.vitamins.as_dict(),
            "minerals": nutrients.minerals.as_dict(),
        },
        deficient_nutrients=list(record.deficient_nutrients),
        excessive_nutrients=list(record.excessive_nutrients),
        improvements=list(record.improvements),
        image_url=image_url,
    )

    try:
        db.add(db_analysis)
        db.commit()
        db.refresh(db_analysis)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[Persistence] Insert failed for user {user_id}; orphaned blob at '{path}': {e}")
        raise PersistenceError(f"{type(e).__name__}: {e}") from e

    logger.info(f"[Persistence] Saved analysis {db_analysis.id} for user {user_id}")
    return db_analysis


def get_analysis(db: Session, user_id: str, analysis_id: int) -> MealAnalysis:
    """Get one analysis owned by the user. Raises AnalysisNotFound otherwise."""
    db_analysis = db.query(MealAnalysis).filter(
        and_(
            MealAnalysis.id == analysis_id,
            MealAnalysis.user_id == user_id
        )
    ).first()
    if db_analysis is None:
        raise AnalysisNotFound(f"No analysis {analysis_id} for this user")
    return db_analysis


def list_analyses(
    db: Session,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[MealAnalysis]:
    """Analyses of a user, newest first. Bounds are inclusive UTC instants."""
    query = db.query(MealAnalysis).filter(MealAnalysis.user_id == user_id)
    if start is not None:
        query = query.filter(MealAnalysis.created_at >= as_utc(start))
    if end is not None:
        query = query.filter(MealAnalysis.created_at <= as_utc(end))
    query = query.order_by(MealAnalysis.created_at.desc(), MealAnalysis.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def to_nutrition_record(db_analysis: MealAnalysis) -> NutritionRecord:
    return NutritionRecord(
        detected_dishes=db_analysis.detected_dishes,
        food_items=db_analysis.food_items,
        calories=db_analysis.calories,
        portions=db_analysis.portions,
        nutrients=db_analysis.nutrients,
        deficient_nutrients=db_analysis.deficient_nutrients,
        excessive_nutrients=db_analysis.excessive_nutrients,
        improvements=db_analysis.improvements,
        image_url=db_analysis.image_url,
    )


def to_stored_analysis(db_analysis: MealAnalysis) -> StoredAnalysis:
    record = to_nutrition_record(db_analysis)
    return StoredAnalysis(
        **record.model_dump(),
        id=db_analysis.id,
        created_at=as_utc(db_analysis.created_at),
    )

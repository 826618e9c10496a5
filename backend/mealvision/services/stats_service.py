import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from config import APP_TIMEZONE
from mealvision.crud.meal_analysis import as_utc, list_analyses, to_nutrition_record
from mealvision.exceptions import InputValidationError, InvalidDateRange
from mealvision.models.meal_analysis import MealAnalysis
from mealvision.schemas.analysis import DailyCalories, IntakeRatio, NutrientSummary, NutritionRecord
from mealvision.utils.nutrient_catalog import MINERALS, MINERAL_KEYS, VITAMINS, VITAMIN_KEYS, daily_intake

logger = logging.getLogger(__name__)

PERIODS = ("day", "week", "month")


def resolve_timezone(tz_name: Optional[str]):
    """pytz timezone for the name; unknown or empty names fall back to UTC."""
    if not tz_name:
        return pytz.UTC
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"[Stats] Unknown timezone '{tz_name}', using UTC")
        return pytz.UTC


def week_start(day: date) -> date:
    """Sunday of the week containing day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


class StatsService:
    """
    Dashboard aggregations over a user's stored analyses.
    Calendar days are interpreted in the service's timezone; timestamps are stored in UTC.
    """

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        self.db = db
        self.tz = resolve_timezone(tz_name or APP_TIMEZONE)

    def today(self) -> date:
        return datetime.now(pytz.UTC).astimezone(self.tz).date()

    def local_date(self, value: datetime) -> date:
        return as_utc(value).astimezone(self.tz).date()

    def day_bounds(self, start: date, end: date) -> Tuple[datetime, datetime]:
        """UTC instants of local start-day 00:00:00 and local end-day 23:59:59.999999."""
        start_local = self.tz.localize(datetime.combine(start, time.min))
        end_local = self.tz.localize(datetime.combine(end, time.max))
        return start_local.astimezone(pytz.UTC), end_local.astimezone(pytz.UTC)

    def analyses_between(self, user_id: str, start: date, end: date,
                         limit: Optional[int] = None) -> List[MealAnalysis]:
        if start > end:
            raise InvalidDateRange(f"start {start} is after end {end}")
        start_utc, end_utc = self.day_bounds(start, end)
        return list_analyses(self.db, user_id, start=start_utc, end=end_utc, limit=limit)

    def sum_by_date_range(self, user_id: str, start: date, end: date) -> NutrientSummary:
        """
        Totals of calories, macros and every catalog vitamin and mineral over
        the local days [start, end]. An empty range gives all zeros.
        """
        rows = self.analyses_between(user_id, start, end)

        totals = {"calories": 0.0, "protein": 0.0, "fat": 0.0, "carbs": 0.0}
        vitamins: Dict[str, float] = {key: 0.0 for key in VITAMIN_KEYS}
        minerals: Dict[str, float] = {key: 0.0 for key in MINERAL_KEYS}

        for row in rows:
            record = to_nutrition_record(row)
            totals["calories"] += record.calories
            totals["protein"] += record.nutrients.protein
            totals["fat"] += record.nutrients.fat
            totals["carbs"] += record.nutrients.carbs
            row_vitamins = record.nutrients.vitamins.as_dict()
            row_minerals = record.nutrients.minerals.as_dict()
            for key in VITAMIN_KEYS:
                vitamins[key] += row_vitamins[key]
            for key in MINERAL_KEYS:
                minerals[key] += row_minerals[key]

        logger.info(f"[Stats] {len(rows)} meals for user {user_id} between {start} and {end}")
        return NutrientSummary(
            start=start,
            end=end,
            meal_count=len(rows),
            total_calories=totals["calories"],
            total_protein=totals["protein"],
            total_fat=totals["fat"],
            total_carbs=totals["carbs"],
            vitamins=vitamins,
            minerals=minerals,
        )

    def weekly_totals(self, user_id: str, reference_date: Optional[date] = None) -> List[DailyCalories]:
        """Calorie totals for the seven days Sunday..Saturday of the week containing reference_date."""
        reference_date = reference_date or self.today()
        sunday = week_start(reference_date)
        saturday = sunday + timedelta(days=6)

        data_map: Dict[date, float] = {}
        for row in self.analyses_between(user_id, sunday, saturday):
            day = self.local_date(row.created_at)
            data_map[day] = data_map.get(day, 0.0) + (row.calories or 0.0)

        week = []
        for i in range(7):
            current_day = sunday + timedelta(days=i)
            week.append(DailyCalories(
                name=current_day.strftime("%a"),  # Sun, Mon...
                date=current_day,
                total=data_map.get(current_day, 0.0),
            ))
        return week

    def period_range(self, period: str, today: Optional[date] = None) -> Tuple[date, date]:
        today = today or self.today()
        if period == "day":
            return today, today
        if period == "week":
            sunday = week_start(today)
            return sunday, sunday + timedelta(days=6)
        if period == "month":
            last_day = calendar.monthrange(today.year, today.month)[1]
            return today.replace(day=1), today.replace(day=last_day)
        raise InputValidationError(f"Unknown period '{period}'. Expected one of {PERIODS}")

    def todays_meals(self, user_id: str, today: Optional[date] = None) -> List[MealAnalysis]:
        today = today or self.today()
        return self.analyses_between(user_id, today, today)


def daily_intake_ratios(record: NutritionRecord, gender: str) -> List[IntakeRatio]:
    """Share of the adult recommended daily intake each vitamin and mineral of one meal covers."""
    try:
        gender = gender.lower()
        daily_intake(VITAMINS[0].key, gender)
    except ValueError as e:
        raise InputValidationError(str(e))

    amounts = {**record.nutrients.vitamins.as_dict(), **record.nutrients.minerals.as_dict()}
    ratios = []
    for spec in VITAMINS + MINERALS:
        amount = amounts[spec.key]
        recommended = daily_intake(spec.key, gender)
        percent = round(amount / recommended * 100, 1) if recommended else None
        ratios.append(IntakeRatio(
            key=spec.key,
            label=spec.label,
            amount=amount,
            unit=spec.unit,
            recommended=recommended,
            percent=percent,
        ))
    return ratios

import logging
import math
import re
from datetime import date as DateType, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mealvision.utils.nutrient_catalog import MINERAL_KEYS, VITAMIN_KEYS

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def coerce_amount(value: Any, field_name: str = "value") -> float:
    """
    Turns whatever the model put in a numeric slot into a non-negative float.
    Numeric strings ("12.5", "12.5 mg", "1,200") are parsed; anything else,
    including negatives and NaN, becomes 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        logger.warning(f"[Schema] Boolean in numeric field '{field_name}', using 0")
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", ""))
        if not match:
            if value.strip():
                logger.warning(f"[Schema] Non-numeric '{value}' in field '{field_name}', using 0")
            return 0.0
        number = float(match.group())
    else:
        logger.warning(f"[Schema] Unexpected {type(value).__name__} in field '{field_name}', using 0")
        return 0.0

    if math.isnan(number) or math.isinf(number) or number < 0:
        logger.warning(f"[Schema] Out of range value {value!r} in field '{field_name}', using 0")
        return 0.0
    return number


def coerce_string_list(value: Any, unique: bool = False) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        logger.warning(f"[Schema] Expected a list, got {type(value).__name__}. Using []")
        return []

    items = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if not text:
            continue
        if unique and text in items:
            continue
        items.append(text)
    return items


class _NutrientTable(BaseModel):
    """One float field per catalog key; unknown keys are dropped, missing ones are 0."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_unknown_keys(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning(f"[Schema] {cls.__name__} is not an object, using zeros")
            return {}
        unknown = [k for k in data if k not in cls.model_fields]
        if unknown:
            logger.warning(f"[Schema] Dropping keys outside the {cls.__name__} catalog: {unknown}")
        return {k: v for k, v in data.items() if k in cls.model_fields}

    @field_validator("*", mode="before")
    @classmethod
    def _coerce(cls, value: Any, info) -> float:
        return coerce_amount(value, info.field_name)

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in type(self).model_fields}


class Vitamins(_NutrientTable):
    vitaminA: float = 0.0
    vitaminD: float = 0.0
    vitaminE: float = 0.0
    vitaminK: float = 0.0
    vitaminB1: float = 0.0
    vitaminB2: float = 0.0
    vitaminB3: float = 0.0
    vitaminB5: float = 0.0
    vitaminB6: float = 0.0
    vitaminB7: float = 0.0
    vitaminB9: float = 0.0
    vitaminB12: float = 0.0
    vitaminC: float = 0.0


class Minerals(_NutrientTable):
    calcium: float = 0.0
    magnesium: float = 0.0
    phosphorus: float = 0.0
    potassium: float = 0.0
    sodium: float = 0.0
    chloride: float = 0.0
    sulfur: float = 0.0
    iron: float = 0.0
    zinc: float = 0.0
    copper: float = 0.0
    manganese: float = 0.0
    fluoride: float = 0.0
    iodine: float = 0.0
    selenium: float = 0.0
    chromium: float = 0.0
    molybdenum: float = 0.0


# The field-per-key tables must stay in lockstep with the catalog
assert tuple(Vitamins.model_fields) == VITAMIN_KEYS
assert tuple(Minerals.model_fields) == MINERAL_KEYS


class Nutrients(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    protein: float = 0.0
    fat: float = 0.0
    carbs: float = 0.0
    vitamins: Vitamins = Field(default_factory=Vitamins)
    minerals: Minerals = Field(default_factory=Minerals)

    @model_validator(mode="before")
    @classmethod
    def _ensure_dict(cls, data: Any) -> Any:
        if data is None or not isinstance(data, dict):
            return {}
        return data

    @field_validator("protein", "fat", "carbs", mode="before")
    @classmethod
    def _coerce_macro(cls, value: Any, info) -> float:
        return coerce_amount(value, info.field_name)


class NutritionRecord(BaseModel):
    """
    Structured output of one photo analysis.
    Serialized in camelCase (detectedDishes, foodItems, ...), accepts snake_case too.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    detected_dishes: List[str] = Field(default_factory=list)
    food_items: List[str] = Field(default_factory=list)
    calories: float = 0.0
    portions: Dict[str, float] = Field(default_factory=dict)
    nutrients: Nutrients = Field(default_factory=Nutrients)
    deficient_nutrients: List[str] = Field(default_factory=list)
    excessive_nutrients: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None

    @field_validator("calories", mode="before")
    @classmethod
    def _coerce_calories(cls, value: Any) -> float:
        return coerce_amount(value, "calories")

    @field_validator("detected_dishes", "improvements", mode="before")
    @classmethod
    def _coerce_ordered(cls, value: Any) -> List[str]:
        return coerce_string_list(value)

    @field_validator("food_items", "deficient_nutrients", "excessive_nutrients", mode="before")
    @classmethod
    def _coerce_sets(cls, value: Any) -> List[str]:
        return coerce_string_list(value, unique=True)

    @field_validator("portions", mode="before")
    @classmethod
    def _coerce_portions(cls, value: Any) -> Dict[str, float]:
        if not isinstance(value, dict):
            if value is not None:
                logger.warning(f"[Schema] portions is a {type(value).__name__}, using {{}}")
            return {}
        return {
            str(name).strip(): coerce_amount(grams, f"portions.{name}")
            for name, grams in value.items()
            if str(name).strip()
        }


class StoredAnalysis(NutritionRecord):
    id: int
    created_at: datetime


class NutrientSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start: DateType
    end: DateType
    meal_count: int = 0
    total_calories: float = 0.0
    total_protein: float = 0.0
    total_fat: float = 0.0
    total_carbs: float = 0.0
    vitamins: Dict[str, float] = Field(default_factory=lambda: {k: 0.0 for k in VITAMIN_KEYS})
    minerals: Dict[str, float] = Field(default_factory=lambda: {k: 0.0 for k in MINERAL_KEYS})


class DailyCalories(BaseModel):
    name: str  # Sun, Mon, ...
    date: DateType
    total: float = 0.0


class IntakeRatio(BaseModel):
    key: str
    label: str
    amount: float
    unit: str
    recommended: Optional[float] = None
    percent: Optional[float] = None

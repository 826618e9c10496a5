"""
Static nutrient catalog: the closed set of vitamin and mineral keys the
analysis prompt asks for, their units and adult reference daily intakes.

Order matters: prompts, context rendering and aggregation all iterate the
catalog in the order declared here.
"""
from typing import Dict, NamedTuple, Optional

MICROGRAM = "μg"
MILLIGRAM = "mg"
GRAM = "g"


class NutrientSpec(NamedTuple):
    key: str
    unit: str
    label: str
    male_rdi: Optional[float]  # None: no established reference intake
    female_rdi: Optional[float]


MACROS = (
    NutrientSpec("protein", GRAM, "Protein", 56, 46),
    NutrientSpec("fat", GRAM, "Fat", 70, 55),
    NutrientSpec("carbs", GRAM, "Carbohydrates", 300, 250),
)

VITAMINS = (
    NutrientSpec("vitaminA", MICROGRAM, "Vitamin A", 900, 700),
    NutrientSpec("vitaminD", MICROGRAM, "Vitamin D", 15, 15),
    NutrientSpec("vitaminE", MILLIGRAM, "Vitamin E", 15, 15),
    NutrientSpec("vitaminK", MICROGRAM, "Vitamin K", 120, 90),
    NutrientSpec("vitaminB1", MILLIGRAM, "Vitamin B1 (thiamin)", 1.2, 1.1),
    NutrientSpec("vitaminB2", MILLIGRAM, "Vitamin B2 (riboflavin)", 1.3, 1.1),
    NutrientSpec("vitaminB3", MILLIGRAM, "Vitamin B3 (niacin)", 16, 14),
    NutrientSpec("vitaminB5", MILLIGRAM, "Vitamin B5 (pantothenic acid)", 5, 5),
    NutrientSpec("vitaminB6", MILLIGRAM, "Vitamin B6", 1.3, 1.3),
    NutrientSpec("vitaminB7", MICROGRAM, "Vitamin B7 (biotin)", 30, 30),
    NutrientSpec("vitaminB9", MICROGRAM, "Vitamin B9 (folate)", 400, 400),
    NutrientSpec("vitaminB12", MICROGRAM, "Vitamin B12", 2.4, 2.4),
    NutrientSpec("vitaminC", MILLIGRAM, "Vitamin C", 90, 75),
)

MINERALS = (
    NutrientSpec("calcium", MILLIGRAM, "Calcium", 1000, 1000),
    NutrientSpec("magnesium", MILLIGRAM, "Magnesium", 420, 320),
    NutrientSpec("phosphorus", MILLIGRAM, "Phosphorus", 700, 700),
    NutrientSpec("potassium", MILLIGRAM, "Potassium", 3400, 2600),
    NutrientSpec("sodium", MILLIGRAM, "Sodium", 1500, 1500),
    NutrientSpec("chloride", MILLIGRAM, "Chloride", 2300, 2300),
    NutrientSpec("sulfur", MILLIGRAM, "Sulfur", None, None),
    NutrientSpec("iron", MILLIGRAM, "Iron", 8, 18),
    NutrientSpec("zinc", MILLIGRAM, "Zinc", 11, 8),
    NutrientSpec("copper", MILLIGRAM, "Copper", 0.9, 0.9),
    NutrientSpec("manganese", MILLIGRAM, "Manganese", 2.3, 1.8),
    NutrientSpec("fluoride", MILLIGRAM, "Fluoride", 4, 3),
    NutrientSpec("iodine", MICROGRAM, "Iodine", 150, 150),
    NutrientSpec("selenium", MICROGRAM, "Selenium", 55, 55),
    NutrientSpec("chromium", MICROGRAM, "Chromium", 35, 25),
    NutrientSpec("molybdenum", MICROGRAM, "Molybdenum", 45, 45),
)

VITAMIN_KEYS = tuple(spec.key for spec in VITAMINS)
MINERAL_KEYS = tuple(spec.key for spec in MINERALS)
MACRO_KEYS = tuple(spec.key for spec in MACROS)

VITAMIN_UNITS: Dict[str, str] = {spec.key: spec.unit for spec in VITAMINS}
MINERAL_UNITS: Dict[str, str] = {spec.key: spec.unit for spec in MINERALS}
MACRO_UNITS: Dict[str, str] = {spec.key: spec.unit for spec in MACROS}

_ALL_SPECS: Dict[str, NutrientSpec] = {spec.key: spec for spec in MACROS + VITAMINS + MINERALS}

GENDERS = ("male", "female")


def unit_for(key: str) -> str:
    """Unit suffix for a catalog key. Raises KeyError for keys outside the catalog."""
    return _ALL_SPECS[key].unit


def label_for(key: str) -> str:
    return _ALL_SPECS[key].label


def daily_intake(key: str, gender: str) -> Optional[float]:
    """
    Recommended daily intake for an adult of the given gender, in the
    nutrient's own unit. Returns None when no reference value exists.
    """
    gender = gender.lower()
    if gender not in GENDERS:
        raise ValueError(f"Unknown gender '{gender}'. Expected one of {GENDERS}")
    spec = _ALL_SPECS[key]
    return spec.male_rdi if gender == "male" else spec.female_rdi

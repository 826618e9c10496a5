from typing import Optional

from mealvision.utils.nutrient_catalog import MINERALS, VITAMINS

ANALYSIS_SYSTEM_PROMPT = """You are a nutritionist assistant that analyzes photos of meals.
Always answer with a single JSON object in exactly the requested format.
Do not include explanations, Markdown or any text outside the JSON."""


def _catalog_lines(specs) -> str:
    return ",\n".join(f'      "{spec.key}": number  // {spec.unit}' for spec in specs)


ANALYSIS_SCHEMA_TEMPLATE = """Analyze this meal photo and answer with JSON in the following format:

{{
  "detectedDishes": ["dish 1", "dish 2", ...],
  "foodItems": ["ingredient 1", "ingredient 2", ...],
  "calories": number,  // kcal for the whole meal
  "portions": {{
    "ingredient 1": number,  // grams
    "ingredient 2": number
  }},
  "nutrients": {{
    "protein": number,  // g
    "fat": number,      // g
    "carbs": number,    // g
    "vitamins": {{
{vitamin_lines}
    }},
    "minerals": {{
{mineral_lines}
    }}
  }},
  "deficientNutrients": ["nutrient name", ...],
  "excessiveNutrients": ["nutrient name", ...],
  "improvements": ["suggestion 1", "suggestion 2", "suggestion 3"]
}}

RULES:
1. Every vitamin and mineral key above MUST be present. Use the unit shown next to each key.
2. If an amount is extremely small, return 0.
3. B vitamins and trace minerals are hard to estimate: think carefully, and return 0 when no estimate is possible.
4. All numbers must be plain JSON numbers without units.
5. Write dish names, ingredient names, nutrient names in deficientNutrients/excessiveNutrients, and improvements in {language}."""

DISH_HINT_TEMPLATE = """
DISH NAME: This dish is "{dish_name}".
- Return exactly ["{dish_name}"] as detectedDishes.
- Estimate nutrients for the whole dish "{dish_name}", including components that are typical for it
  but not visible in the photo (for example rice under a sauce, or noodles under toppings)."""


def build_analysis_prompt(language: str, dish_name: Optional[str] = None) -> str:
    prompt = ANALYSIS_SCHEMA_TEMPLATE.format(
        vitamin_lines=_catalog_lines(VITAMINS),
        mineral_lines=_catalog_lines(MINERALS),
        language=language,
    )
    if dish_name:
        prompt += "\n" + DISH_HINT_TEMPLATE.format(dish_name=dish_name)
    return prompt

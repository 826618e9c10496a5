import logging
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage

from config import MAX_UPLOAD_BYTES, RESPONSE_LANGUAGE
from mealvision.exceptions import InvalidImageError, InvalidResponseFormat, PayloadTooLarge
from mealvision.schemas.analysis import NutritionRecord
from mealvision.services.llm_service import invoke_llm, parse_json_from_text
from mealvision.utils.image_utils import image_content_part, normalize_mime_type
from mealvision.utils.llm_prompts.analysis_prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt

logger = logging.getLogger(__name__)


async def analyze_image(
    image_bytes: bytes,
    mime_type: str,
    dish_name: Optional[str] = None,
) -> NutritionRecord:
    """
    Sends one meal photo to the vision model and returns the parsed NutritionRecord.

    Validation (type, size) happens before the model is called. When a dish
    name is given it is authoritative: the result's detected_dishes is
    exactly [dish_name].
    """
    mime = normalize_mime_type(mime_type)
    if not image_bytes:
        raise InvalidImageError("Image is empty")
    if len(image_bytes) > MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(f"Image is {len(image_bytes)} bytes; limit is {MAX_UPLOAD_BYTES}")

    dish_name = dish_name.strip() if dish_name else None
    logger.info(f"[Analyze] Analyzing {mime} image ({len(image_bytes)} bytes), hint={dish_name!r}")

    messages = [
        SystemMessage(content=ANALYSIS_SYSTEM_PROMPT),
        HumanMessage(content=[
            image_content_part(image_bytes, mime),
            {"type": "text", "text": build_analysis_prompt(RESPONSE_LANGUAGE, dish_name)},
        ]),
    ]

    # Deterministic output for the same photo
    reply = await invoke_llm(messages, temperature=0, json_mode=True)

    data = parse_json_from_text(reply)
    if data is None:
        logger.error(f"[Analyze] Reply is not a JSON object: {reply[:500]}")
        raise InvalidResponseFormat("Model reply is not a JSON object")

    if dish_name:
        data["detectedDishes"] = [dish_name]
        data.pop("detected_dishes", None)

    record = NutritionRecord.model_validate(data)
    logger.info(f"[Analyze] Detected {record.detected_dishes}, {record.calories:g} kcal")
    return record

import logging

from fastapi import APIRouter, Depends, Request

from mealvision.api.auth import get_current_user
from mealvision.api.request_utils import form_text, preflight_response, read_form, read_upload
from mealvision.schemas.analysis import NutritionRecord
from mealvision.services.analysis_service import analyze_image

logger = logging.getLogger(__name__)

router = APIRouter()


@router.options("/analyze", include_in_schema=False)
def analyze_preflight():
    return preflight_response()


@router.post("/analyze", response_model=NutritionRecord)
async def analyze_meal(
    request: Request,
    current_user: str = Depends(get_current_user),
):
    """
    Analyze a meal photo.
    Multipart fields: file (image, required), dishName (optional hint).
    Nothing is stored; the client posts the result to /analyses to keep it.
    """
    form = await read_form(request)
    image_bytes, filename, content_type = await read_upload(form, "file")
    dish_name = form_text(form, "dishName")

    logger.info(f"[Analyze API] User {current_user} uploaded '{filename}' ({len(image_bytes)} bytes)")
    return await analyze_image(image_bytes, content_type, dish_name)

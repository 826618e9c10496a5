import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx

from config import IMAGE_MAX_DIMENSION, IMAGE_QUALITY, MAX_UPLOAD_BYTES, SUPABASE_BUCKET, SUPABASE_URL
from mealvision.exceptions import InvalidImageError
from mealvision.schemas.analysis import NutritionRecord
from mealvision.schemas.chat import ChatMessageSchema
from mealvision.utils.image_utils import image_content_part, reencode_image
from mealvision.utils.nutrient_catalog import MACROS, MINERALS, VITAMINS

logger = logging.getLogger(__name__)

IMAGE_FETCH_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class AssembledContext:
    text: str
    image_part: Optional[Dict[str, Any]] = None


def format_amount(value: float) -> str:
    """12.0 -> "12", 12.5 -> "12.5", at most three decimals."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_record(record: NutritionRecord) -> str:
    dishes = ", ".join(record.detected_dishes) if record.detected_dishes else "unknown"
    nutrients = record.nutrients
    vitamins = nutrients.vitamins.as_dict()
    minerals = nutrients.minerals.as_dict()

    lines = [
        f"Detected dishes: {dishes}",
        f"Calories: {format_amount(record.calories)}kcal",
        "Nutrients:",
    ]
    for spec in MACROS:
        lines.append(f"- {spec.key}: {format_amount(getattr(nutrients, spec.key))}{spec.unit}")
    lines.append("Vitamins:")
    for spec in VITAMINS:
        lines.append(f"- {spec.key}: {format_amount(vitamins[spec.key])}{spec.unit}")
    lines.append("Minerals:")
    for spec in MINERALS:
        lines.append(f"- {spec.key}: {format_amount(minerals[spec.key])}{spec.unit}")
    return "\n".join(lines)


def render_history(history: Sequence[ChatMessageSchema]) -> str:
    lines = ["Conversation so far:"]
    lines.extend(f"{message.role}: {message.content}" for message in history)
    return "\n".join(lines)


def storage_url_prefix() -> Optional[str]:
    """Public URL prefix of the meal photo bucket, None when storage is not configured."""
    if not SUPABASE_URL:
        return None
    return f"{SUPABASE_URL.rstrip('/')}/storage/v1/object/public/{SUPABASE_BUCKET}/"


def is_storage_url(url: str) -> bool:
    prefix = storage_url_prefix()
    return bool(prefix) and url.startswith(prefix)


async def fetch_image(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[bytes]:
    """
    Downloads a stored meal photo from our own storage bucket. Returns None for
    foreign URLs, redirects, bodies over MAX_UPLOAD_BYTES and any transport or
    HTTP error.
    """
    if not is_storage_url(url):
        logger.warning(f"[Context] Refusing to fetch image outside the storage bucket: {url}")
        return None

    try:
        async with httpx.AsyncClient(timeout=IMAGE_FETCH_TIMEOUT_SECONDS, transport=transport) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > MAX_UPLOAD_BYTES:
                    logger.warning(f"[Context] Image {url} is too large ({declared} bytes)")
                    return None

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > MAX_UPLOAD_BYTES:
                        logger.warning(f"[Context] Image {url} exceeded {MAX_UPLOAD_BYTES} bytes, aborting")
                        return None
                    chunks.append(chunk)
                return b"".join(chunks)
    except httpx.HTTPError as e:
        logger.warning(f"[Context] Could not fetch image {url}: {e}")
        return None


async def assemble_context(
    record: NutritionRecord,
    history: Optional[Sequence[ChatMessageSchema]] = None,
    image_url: Optional[str] = None,
    image_bytes: Optional[bytes] = None,
) -> AssembledContext:
    """
    Renders an analysis (and the conversation so far) into the text block the
    chat model reads, and re-attaches the meal photo when one is available.

    Image bytes sent by the client win over the stored URL. A photo that
    cannot be fetched or decoded is dropped and the context stays text-only.
    """
    sections = [render_record(record)]
    if history:
        sections.append(render_history(history))
    text = "\n".join(sections)

    source = image_bytes
    url = image_url or record.image_url
    if source is None and url:
        source = await fetch_image(url)

    image_part = None
    if source:
        try:
            jpeg = reencode_image(source, IMAGE_MAX_DIMENSION, IMAGE_QUALITY)
            image_part = image_content_part(jpeg, "image/jpeg")
        except InvalidImageError as e:
            logger.warning(f"[Context] Dropping undecodable image: {e.details}")

    return AssembledContext(text=text, image_part=image_part)

import json
import logging
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from mealvision.api.auth import get_current_user
from mealvision.api.request_utils import form_flag, form_json, form_text, preflight_response, read_form
from mealvision.crud import chat as chat_crud
from mealvision.crud.meal_analysis import get_analysis, to_nutrition_record
from mealvision.database import get_db
from mealvision.exceptions import InputValidationError, MealVisionError, MissingFieldError
from mealvision.schemas.analysis import NutritionRecord
from mealvision.schemas.chat import ChatMessageSchema, ChatResponse, ChatThreadSchema
from mealvision.services.chat_service import export_chat_history, generate_chat_response, stream_chat_response
from mealvision.services.context_assembler import assemble_context
from mealvision.utils.image_utils import decode_base64_image

logger = logging.getLogger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _parse_history(raw) -> Optional[List[ChatMessageSchema]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise InputValidationError("chatHistory must be a JSON array of {role, content}")
    try:
        return [ChatMessageSchema.model_validate(item) for item in raw]
    except ValidationError as e:
        raise InputValidationError(f"Invalid chatHistory entry: {e.errors()[0]['msg']}")


def _parse_analysis_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise InputValidationError(f"analysisId must be an integer, got '{raw}'")


def _save_turn(db: Session, thread_id: int, question: str, answer: str) -> None:
    chat_crud.append_message(db, thread_id, "user", question)
    chat_crud.append_message(db, thread_id, "assistant", answer)
    logger.info(f"[Chat API] Saved turn on thread {thread_id}")


def _ndjson(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False) + "\n"


async def _ndjson_frames(
    first_frame: str,
    frames: AsyncIterator[str],
    db: Session,
    thread_id: Optional[int],
    question: str,
) -> AsyncIterator[str]:
    """Cumulative {"response": ...} lines; a failure after the first frame ends with an {"error": ...} line."""
    text = first_frame
    yield _ndjson({"response": text})
    try:
        async for frame in frames:
            text = frame
            yield _ndjson({"response": text})
        if thread_id is not None:
            _save_turn(db, thread_id, question, text)
    except MealVisionError as e:
        logger.error(f"[Chat API] Stream aborted: {type(e).__name__}: {e.details}")
        yield _ndjson({"error": e.error, "details": ""})
    except Exception as e:
        logger.exception(f"[Chat API] Stream aborted: {e}")
        yield _ndjson({"error": MealVisionError.error, "details": ""})


@router.options("/chat", include_in_schema=False)
def chat_preflight():
    return preflight_response()


@router.post("/chat", response_model=ChatResponse)
async def chat_about_meal(
    request: Request,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """
    Ask a follow-up question about one analyzed meal.

    Multipart fields: message, analysisData (JSON), chatHistory (JSON array),
    imageData (base64), analysisId, stream. With analysisId the turn counts
    against the thread's limit and is stored; the stored conversation is used
    when chatHistory is not sent. Streaming (stream=true or Accept:
    application/x-ndjson) answers with cumulative NDJSON frames.
    """
    form = await read_form(request)
    message = form_text(form, "message", required=True).strip()
    analysis_id = _parse_analysis_id(form_text(form, "analysisId"))
    analysis_data = form_json(form, "analysisData", required=analysis_id is None)
    history = _parse_history(form_json(form, "chatHistory"))
    image_data = form_text(form, "imageData")
    image_bytes = decode_base64_image(image_data) if image_data else None
    wants_stream = form_flag(form, "stream") or NDJSON_MEDIA_TYPE in request.headers.get("accept", "")

    if analysis_data is not None and not isinstance(analysis_data, dict):
        raise InputValidationError("analysisData must be a JSON object")

    thread_id = None
    if analysis_id is not None:
        # Turn limit is checked before the model is called
        thread = chat_crud.create_or_get_chat_thread(db, analysis_id, current_user)
        chat_crud.ensure_turn_available(thread)
        thread_id = thread.id
        if history is None:
            history = [chat_crud.to_message_schema(m) for m in chat_crud.get_messages(db, thread_id)]
        if analysis_data is None:
            record = to_nutrition_record(get_analysis(db, current_user, analysis_id))
        else:
            record = NutritionRecord.model_validate(analysis_data)
    else:
        if not analysis_data:
            raise MissingFieldError("Field 'analysisData' is required")
        record = NutritionRecord.model_validate(analysis_data)

    context = await assemble_context(record, history, image_bytes=image_bytes)
    logger.info(f"[Chat API] User {current_user} asked about analysis {analysis_id} (stream={wants_stream})")

    if wants_stream:
        frames = stream_chat_response(message, context)
        # Errors before the first frame still produce a normal error response
        first_frame = await frames.__anext__()
        return StreamingResponse(
            _ndjson_frames(first_frame, frames, db, thread_id, message),
            media_type=NDJSON_MEDIA_TYPE,
        )

    reply = await generate_chat_response(message, context)
    if thread_id is not None:
        _save_turn(db, thread_id, message, reply)
    return ChatResponse(response=reply)


@router.post("/analyses/{analysis_id}/chat", response_model=ChatThreadSchema)
def open_chat_thread(
    analysis_id: int,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    """Create the chat thread for an analysis, or return the existing one."""
    thread = chat_crud.create_or_get_chat_thread(db, analysis_id, current_user)
    return chat_crud.to_thread_schema(thread, chat_crud.get_messages(db, thread.id))


@router.get("/analyses/{analysis_id}/chat", response_model=ChatThreadSchema)
def get_chat_thread(
    analysis_id: int,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    thread = chat_crud.create_or_get_chat_thread(db, analysis_id, current_user)
    return chat_crud.to_thread_schema(thread, chat_crud.get_messages(db, thread.id))


@router.get("/analyses/{analysis_id}/chat/export", response_class=PlainTextResponse)
def export_chat_thread(
    analysis_id: int,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user),
):
    thread = chat_crud.create_or_get_chat_thread(db, analysis_id, current_user)
    messages = [chat_crud.to_message_schema(m) for m in chat_crud.get_messages(db, thread.id)]
    return PlainTextResponse(export_chat_history(messages))

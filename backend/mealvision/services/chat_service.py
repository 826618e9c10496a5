import logging
from typing import AsyncIterator, List, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from config import RESPONSE_LANGUAGE, STREAM_FLUSH_CHARS
from mealvision.exceptions import InvalidResponseFormat
from mealvision.schemas.chat import ChatMessageSchema
from mealvision.services.context_assembler import AssembledContext
from mealvision.services.llm_service import invoke_llm, stream_llm
from mealvision.utils.llm_prompts.chat_prompts import CHAT_SYSTEM_PROMPT, USER_QUESTION_TEMPLATE

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.7


def build_chat_messages(question: str, context: AssembledContext) -> List[BaseMessage]:
    text = USER_QUESTION_TEMPLATE.format(context=context.text, question=question)
    content = [{"type": "text", "text": text}]
    if context.image_part:
        content.append(context.image_part)
    return [
        SystemMessage(content=CHAT_SYSTEM_PROMPT.format(language=RESPONSE_LANGUAGE)),
        HumanMessage(content=content),
    ]


async def generate_chat_response(question: str, context: AssembledContext) -> str:
    logger.info(f"[Chat] Question ({len(question)} chars), image={'yes' if context.image_part else 'no'}")
    return await invoke_llm(build_chat_messages(question, context), temperature=CHAT_TEMPERATURE)


async def stream_chat_response(question: str, context: AssembledContext) -> AsyncIterator[str]:
    """
    Yields cumulative reply frames: each frame is the whole text so far.
    A frame is emitted once STREAM_FLUSH_CHARS characters or a newline have
    arrived since the previous one; the remainder is flushed at the end.
    """
    logger.info(f"[Chat] Streaming question ({len(question)} chars), image={'yes' if context.image_part else 'no'}")
    full_text = ""
    pending = ""

    async for piece in stream_llm(build_chat_messages(question, context), temperature=CHAT_TEMPERATURE):
        full_text += piece
        pending += piece
        if len(pending) >= STREAM_FLUSH_CHARS or "\n" in pending:
            pending = ""
            yield full_text

    if not full_text.strip():
        raise InvalidResponseFormat("Model stream produced no text")
    if pending:
        yield full_text

    logger.info(f"[Chat] Stream finished ({len(full_text)} chars)")


def export_chat_history(messages: Sequence[ChatMessageSchema]) -> str:
    """Plain-text transcript, one '[YYYY-MM-DD HH:MM:SS] role: content' entry per message."""
    lines = []
    for message in messages:
        stamp = message.timestamp.strftime("%Y-%m-%d %H:%M:%S") if message.timestamp else "-"
        lines.append(f"[{stamp}] {message.role}: {message.content}")
    return "\n".join(lines)

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

# LangChain Imports
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage

from config import (
    LLM_PROVIDER,
    LLM_API_KEY,
    LLM_MODEL as OVERRIDE_MODEL,
    LLM_MAX_TOKENS,
    LLM_TIMEOUT_SECONDS,
    OLLAMA_URL,
)
from mealvision.exceptions import (
    ExternalServiceTimeout,
    ExternalServiceUnavailable,
    InvalidResponseFormat,
)

logger = logging.getLogger(__name__)

# Determine Model Name based on Provider
# If LLM_MODEL is set in env, it overrides everything.
# Every default must accept image input.
DEFAULT_MODELS = {
    "ollama": "llama3.2-vision",
    "openrouter": "anthropic/claude-3.5-sonnet",
    "openai": "gpt-4o",
}

MODEL_NAME = OVERRIDE_MODEL if OVERRIDE_MODEL else DEFAULT_MODELS.get(LLM_PROVIDER, "gpt-4o")

# Base URLs for paid providers
PROVIDER_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": None # Uses default OpenAI URL
}


def get_llm(temperature: float = 0.7, max_tokens: int = LLM_MAX_TOKENS, json_mode: bool = False):
    """
    Factory function to get a configured LangChain Chat Model instance.
    Supports: Ollama (Local), OpenRouter, OpenAI
    """

    # 1. Ollama (Local)
    if LLM_PROVIDER == "ollama":
        format_val = "json" if json_mode else ""
        return ChatOllama(
            base_url=OLLAMA_URL,
            model=MODEL_NAME,
            temperature=temperature,
            num_predict=max_tokens,
            format=format_val,
            client_kwargs={"timeout": LLM_TIMEOUT_SECONDS},
        )

    # 2. OpenAI Compatible (OpenRouter, OpenAI)
    elif LLM_PROVIDER in ["openrouter", "openai"]:
        if not LLM_API_KEY:
            # Let the call fail so a misconfiguration surfaces as an upstream error
            logger.critical(f"[LLM Service] Missing API Key for provider {LLM_PROVIDER}")

        model_kwargs = {}
        if json_mode:
            model_kwargs["response_format"] = {"type": "json_object"}

        return ChatOpenAI(
            model=MODEL_NAME,
            api_key=LLM_API_KEY,
            base_url=PROVIDER_URLS.get(LLM_PROVIDER),
            temperature=temperature,
            max_tokens=max_tokens,
            model_kwargs=model_kwargs,
            timeout=LLM_TIMEOUT_SECONDS,
            max_retries=0,  # failed calls are re-initiated by the user
        )

    # 3. Fallback / Unknown
    else:
        logger.warning(f"[LLM Service] Unknown provider '{LLM_PROVIDER}'. Defaulting to Ollama.")
        return ChatOllama(
            base_url=OLLAMA_URL,
            model=MODEL_NAME,
            temperature=temperature,
            num_predict=max_tokens,
            client_kwargs={"timeout": LLM_TIMEOUT_SECONDS},
        )


def _log_usage(response) -> None:
    """Logs token usage from either the standard usage_metadata or provider metadata."""
    usage = getattr(response, "usage_metadata", None) or {}
    input_tokens = usage.get("input_tokens") or 0
    output_tokens = usage.get("output_tokens") or 0

    if input_tokens == 0 and output_tokens == 0:
        metadata = getattr(response, "response_metadata", None) or {}
        # Ollama returns tokens directly in metadata, not in nested 'usage'
        input_tokens = metadata.get("prompt_eval_count") or 0
        output_tokens = metadata.get("eval_count") or 0
        if input_tokens == 0 and output_tokens == 0:
            nested = metadata.get("token_usage") or metadata.get("usage") or {}
            input_tokens = nested.get("prompt_tokens") or nested.get("input_tokens") or 0
            output_tokens = nested.get("completion_tokens") or nested.get("output_tokens") or 0

    logger.info(f"[LLM Stats] Input: {input_tokens}, Output: {output_tokens}, Total: {input_tokens + output_tokens}")


def extract_text(content: Any) -> str:
    """
    Returns the text of a model reply. Content may be a plain string or a
    list of content blocks; a reply without any text block is an error.
    """
    if isinstance(content, str):
        text = content
    elif isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text" and "text" in block:
                parts.append(block["text"])
        if not parts:
            raise InvalidResponseFormat("Model reply contains no text block")
        text = "".join(parts)
    else:
        raise InvalidResponseFormat(f"Unexpected reply content type {type(content).__name__}")

    if not text.strip():
        raise InvalidResponseFormat("Model reply is empty")
    return text


def _chunk_text(content: Any) -> str:
    # Stream chunks may legitimately be empty or carry non-text blocks
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block["text"] for block in content
            if isinstance(block, dict) and block.get("type") == "text" and "text" in block
        )
    return ""


async def invoke_llm(
    messages: List[BaseMessage],
    temperature: float = 0.7,
    json_mode: bool = False,
    max_tokens: int = LLM_MAX_TOKENS,
) -> str:
    """
    Executes one chat completion and returns the reply text.
    Raises ExternalServiceTimeout / ExternalServiceUnavailable / InvalidResponseFormat.
    """
    logger.info(f"[LLM Service] Calling Model ({'JSON' if json_mode else 'Text'}): {MODEL_NAME}")
    llm = get_llm(temperature=temperature, max_tokens=max_tokens, json_mode=json_mode)

    try:
        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=LLM_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        logger.error(f"[LLM Service] Call timed out after {LLM_TIMEOUT_SECONDS}s")
        raise ExternalServiceTimeout(f"Model call exceeded {LLM_TIMEOUT_SECONDS}s") from e
    except Exception as e:
        logger.exception(f"[LLM Service] Call failed: {e}")
        raise ExternalServiceUnavailable(f"{type(e).__name__}: {e}") from e

    _log_usage(response)
    text = extract_text(response.content)
    logger.debug(f"[LLM Service] Reply: {text}")
    return text


async def stream_llm(
    messages: List[BaseMessage],
    temperature: float = 0.7,
    max_tokens: int = LLM_MAX_TOKENS,
) -> AsyncIterator[str]:
    """
    Yields reply text pieces as the model produces them. The whole stream
    shares one deadline of LLM_TIMEOUT_SECONDS.
    """
    logger.info(f"[LLM Service] Streaming Model (Text): {MODEL_NAME}")
    llm = get_llm(temperature=temperature, max_tokens=max_tokens)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + LLM_TIMEOUT_SECONDS
    stream = llm.astream(messages)

    try:
        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                chunk = await asyncio.wait_for(stream.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError as e:
                logger.error(f"[LLM Service] Stream timed out after {LLM_TIMEOUT_SECONDS}s")
                raise ExternalServiceTimeout(f"Model stream exceeded {LLM_TIMEOUT_SECONDS}s") from e
            except Exception as e:
                logger.exception(f"[LLM Service] Stream failed: {e}")
                raise ExternalServiceUnavailable(f"{type(e).__name__}: {e}") from e

            text = _chunk_text(chunk.content)
            if text:
                yield text
    finally:
        await stream.aclose()


def _strip_line_comments(text: str) -> str:
    """Drops // comments that sit outside double-quoted strings."""
    out = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def parse_json_from_text(text: str) -> Optional[Dict]:
    """
    Robust JSON object parser for model replies: strips Markdown fences,
    cuts to the outermost braces and retries after light repairs.
    Returns None when no JSON object can be recovered.
    """
    cleaned_text = text.strip()

    # 1. Strip Markdown Code Blocks
    if "```json" in cleaned_text:
        parts = cleaned_text.split("```json")
        if len(parts) > 1:
            cleaned_text = parts[1].split("```")[0].strip()
    elif "```" in cleaned_text:
        cleaned_text = cleaned_text.replace("```", "").strip()

    start_idx = cleaned_text.find('{')
    end_idx = cleaned_text.rfind('}')

    if start_idx != -1 and end_idx != -1:
        cleaned_text = cleaned_text[start_idx:end_idx+1]

    try:
        parsed = json.loads(cleaned_text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError as e:
        logger.warning(f"[LLM Service] Initial JSON parse failed: {e}. Attempting JSON repair...")

    # // comments copied from the schema example, then trailing commas they may leave behind
    repaired_text = _strip_line_comments(cleaned_text)
    repaired_text = re.sub(r',\s*}', '}', repaired_text)
    repaired_text = re.sub(r',\s*]', ']', repaired_text)
    # Single-quoted keys
    repaired_text = re.sub(r"(?<=[{,\[])\s*'([^']+)'\s*:", r'"\1":', repaired_text)

    try:
        parsed = json.loads(repaired_text)
    except json.JSONDecodeError as e:
        logger.error(f"[LLM Service] JSON repair failed: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None

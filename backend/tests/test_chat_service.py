import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from mealvision.exceptions import ExternalServiceUnavailable, InvalidResponseFormat
from mealvision.schemas.chat import ChatMessageSchema
from mealvision.services.chat_service import (
    build_chat_messages,
    export_chat_history,
    generate_chat_response,
    stream_chat_response,
)
from mealvision.services.context_assembler import AssembledContext

CONTEXT = AssembledContext(text="Detected dishes: ramen\nCalories: 700kcal")
IMAGE_PART = {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}}


def fake_stream(*pieces, error=None):
    async def _stream(messages, temperature=0.7):
        for piece in pieces:
            yield piece
        if error:
            raise error
    return _stream


async def collect(question="Too salty?", context=CONTEXT):
    return [frame async for frame in stream_chat_response(question, context)]


class TestChatMessages(unittest.TestCase):

    def test_context_question_and_image(self):
        messages = build_chat_messages("Too salty?", AssembledContext(text=CONTEXT.text, image_part=IMAGE_PART))
        self.assertIn("nutritionist", messages[0].content)
        self.assertIn("Answer in Japanese", messages[0].content)
        text_part, image_part = messages[1].content
        self.assertEqual(text_part["text"], f"{CONTEXT.text}\n\nUser question: Too salty?")
        self.assertEqual(image_part, IMAGE_PART)

    def test_without_image(self):
        messages = build_chat_messages("Too salty?", CONTEXT)
        self.assertEqual(len(messages[1].content), 1)


class TestGenerateChatResponse(unittest.IsolatedAsyncioTestCase):

    async def test_single_shot(self):
        with patch("mealvision.services.chat_service.invoke_llm",
                   new=AsyncMock(return_value="Yes, a little.")) as invoke:
            reply = await generate_chat_response("Too salty?", CONTEXT)
        self.assertEqual(reply, "Yes, a little.")
        self.assertIn("User question: Too salty?", invoke.call_args.args[0][1].content[0]["text"])


class TestStreamChatResponse(unittest.IsolatedAsyncioTestCase):

    async def test_flushes_every_hundred_chars(self):
        with patch("mealvision.services.chat_service.stream_llm", new=fake_stream("a" * 60, "b" * 60, "c")):
            frames = await collect()
        self.assertEqual(frames, ["a" * 60 + "b" * 60, "a" * 60 + "b" * 60 + "c"])

    async def test_newline_flushes(self):
        with patch("mealvision.services.chat_service.stream_llm", new=fake_stream("Hello", "\n", "World")):
            frames = await collect()
        self.assertEqual(frames, ["Hello\n", "Hello\nWorld"])

    async def test_frames_are_growing_prefixes(self):
        pieces = ["## 塩分\n", "- スープ", "を残す" * 40, "\n1. ", "野菜を足す", "。"]
        with patch("mealvision.services.chat_service.stream_llm", new=fake_stream(*pieces)):
            frames = await collect()
        self.assertEqual(frames[-1], "".join(pieces))
        for previous, current in zip(frames, frames[1:]):
            self.assertTrue(current.startswith(previous))
            self.assertGreater(len(current), len(previous))
        self.assertTrue(all(frames))

    async def test_short_reply_is_one_frame(self):
        with patch("mealvision.services.chat_service.stream_llm", new=fake_stream("OK")):
            self.assertEqual(await collect(), ["OK"])

    async def test_empty_stream(self):
        with patch("mealvision.services.chat_service.stream_llm", new=fake_stream()):
            with self.assertRaises(InvalidResponseFormat):
                await collect()

    async def test_failure_mid_stream(self):
        frames = []
        stream = fake_stream("x" * 150, error=ExternalServiceUnavailable("reset"))
        with patch("mealvision.services.chat_service.stream_llm", new=stream):
            with self.assertRaises(ExternalServiceUnavailable):
                async for frame in stream_chat_response("q", CONTEXT):
                    frames.append(frame)
        self.assertEqual(frames, ["x" * 150])


class TestExportChatHistory(unittest.TestCase):

    def test_transcript(self):
        messages = [
            ChatMessageSchema(role="user", content="Too salty?",
                              timestamp=datetime(2026, 10, 19, 12, 30, 5, tzinfo=timezone.utc)),
            ChatMessageSchema(role="assistant", content="A little.",
                              timestamp=datetime(2026, 10, 19, 12, 30, 9, tzinfo=timezone.utc)),
        ]
        self.assertEqual(
            export_chat_history(messages),
            "[2026-10-19 12:30:05] user: Too salty?\n[2026-10-19 12:30:09] assistant: A little.",
        )

    def test_empty(self):
        self.assertEqual(export_chat_history([]), "")


if __name__ == '__main__':
    unittest.main()

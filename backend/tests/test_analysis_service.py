import json
import unittest
from unittest.mock import AsyncMock, patch

from langchain_core.messages import HumanMessage, SystemMessage

from config import MAX_UPLOAD_BYTES
from mealvision.exceptions import (
    ExternalServiceTimeout,
    InvalidImageError,
    InvalidResponseFormat,
    PayloadTooLarge,
)
from mealvision.services.analysis_service import analyze_image

MODEL_REPLY = {
    "detectedDishes": ["soup", "rice"],
    "foodItems": ["tofu", "wakame", "miso"],
    "calories": 80,
    "portions": {"tofu": 30},
    "nutrients": {
        "protein": 6,
        "fat": 3,
        "carbs": 7,
        "vitamins": {"vitaminK": 40},
        "minerals": {"sodium": 900},
    },
    "deficientNutrients": ["ビタミンC"],
    "excessiveNutrients": ["ナトリウム"],
    "improvements": ["Use less miso"],
}


class TestAnalyzeImage(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        patcher = patch(
            "mealvision.services.analysis_service.invoke_llm",
            new=AsyncMock(return_value=json.dumps(MODEL_REPLY)),
        )
        self.invoke_llm = patcher.start()
        self.addCleanup(patcher.stop)

    async def test_parses_reply(self):
        record = await analyze_image(b"fake-jpeg", "image/jpeg")

        self.assertEqual(record.detected_dishes, ["soup", "rice"])
        self.assertEqual(record.calories, 80.0)
        self.assertEqual(record.nutrients.vitamins.vitaminK, 40.0)
        self.assertEqual(record.nutrients.vitamins.vitaminC, 0.0)
        self.assertEqual(record.nutrients.minerals.sodium, 900.0)

    async def test_request_shape(self):
        await analyze_image(b"fake-png", "image/png")

        messages = self.invoke_llm.call_args.args[0]
        self.assertIsInstance(messages[0], SystemMessage)
        self.assertIn("JSON", messages[0].content)
        self.assertIsInstance(messages[1], HumanMessage)
        image_part, text_part = messages[1].content
        self.assertTrue(image_part["image_url"]["url"].startswith("data:image/png;base64,"))
        self.assertIn('"vitaminB12": number  // μg', text_part["text"])
        self.assertIn('"molybdenum": number  // μg', text_part["text"])
        self.assertEqual(self.invoke_llm.call_args.kwargs["temperature"], 0)
        self.assertTrue(self.invoke_llm.call_args.kwargs["json_mode"])

    async def test_dish_hint_is_authoritative(self):
        record = await analyze_image(b"fake-jpeg", "image/jpeg", dish_name="味噌汁")

        self.assertEqual(record.detected_dishes, ["味噌汁"])
        prompt = self.invoke_llm.call_args.args[0][1].content[1]["text"]
        self.assertIn('This dish is "味噌汁"', prompt)
        self.assertIn('Return exactly ["味噌汁"]', prompt)

    async def test_blank_hint_is_ignored(self):
        record = await analyze_image(b"fake-jpeg", "image/jpeg", dish_name="   ")
        self.assertEqual(record.detected_dishes, ["soup", "rice"])

    async def test_fenced_reply(self):
        self.invoke_llm.return_value = f"```json\n{json.dumps(MODEL_REPLY)}\n```"
        record = await analyze_image(b"fake-jpeg", "image/jpg")
        self.assertEqual(record.food_items, ["tofu", "wakame", "miso"])

    async def test_non_json_reply(self):
        self.invoke_llm.return_value = "Sorry, I can't see any food here."
        with self.assertRaises(InvalidResponseFormat):
            await analyze_image(b"fake-jpeg", "image/jpeg")

    async def test_unsupported_type_never_calls_model(self):
        with self.assertRaises(InvalidImageError):
            await analyze_image(b"%PDF-1.4", "application/pdf")
        self.invoke_llm.assert_not_called()

    async def test_too_large_never_calls_model(self):
        with self.assertRaises(PayloadTooLarge):
            await analyze_image(b"\0" * (MAX_UPLOAD_BYTES + 1), "image/jpeg")
        self.invoke_llm.assert_not_called()

    async def test_empty_image(self):
        with self.assertRaises(InvalidImageError):
            await analyze_image(b"", "image/jpeg")

    async def test_timeout_propagates(self):
        self.invoke_llm.side_effect = ExternalServiceTimeout("60s")
        with self.assertRaises(ExternalServiceTimeout):
            await analyze_image(b"fake-jpeg", "image/jpeg")


if __name__ == '__main__':
    unittest.main()

import io
import unittest
from unittest.mock import AsyncMock, patch

import httpx
from PIL import Image

from mealvision.schemas.analysis import NutritionRecord
from mealvision.schemas.chat import ChatMessageSchema
from mealvision.services.context_assembler import assemble_context, fetch_image, format_amount


def make_png(size=(40, 30)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (10, 200, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


RECORD = NutritionRecord.model_validate({
    "detectedDishes": ["カレーライス", "サラダ"],
    "calories": 640,
    "nutrients": {
        "protein": 25,
        "fat": 18.5,
        "carbs": 80,
        "vitamins": {"vitaminA": 120, "vitaminC": 12.25},
        "minerals": {"calcium": 80, "iodine": 15},
    },
})


class TestFormatAmount(unittest.TestCase):

    def test_whole_and_fractional(self):
        self.assertEqual(format_amount(640.0), "640")
        self.assertEqual(format_amount(18.5), "18.5")
        self.assertEqual(format_amount(0.1234), "0.123")
        self.assertEqual(format_amount(0), "0")


class TestAssembleContext(unittest.IsolatedAsyncioTestCase):

    async def test_text_block(self):
        context = await assemble_context(RECORD)
        lines = context.text.splitlines()

        self.assertEqual(lines[0], "Detected dishes: カレーライス, サラダ")
        self.assertEqual(lines[1], "Calories: 640kcal")
        self.assertEqual(lines[2], "Nutrients:")
        self.assertEqual(lines[3:6], ["- protein: 25g", "- fat: 18.5g", "- carbs: 80g"])
        self.assertIn("- vitaminA: 120μg", lines)
        self.assertIn("- vitaminC: 12.25mg", lines)
        self.assertIn("- calcium: 80mg", lines)
        self.assertIn("- iodine: 15μg", lines)
        self.assertIn("- sulfur: 0mg", lines)
        self.assertNotIn("Conversation so far:", context.text)
        self.assertIsNone(context.image_part)

    async def test_every_catalog_key_has_a_unit(self):
        context = await assemble_context(RECORD)
        self.assertEqual(context.text.count("\n- "), 3 + 13 + 16)
        self.assertNotIn("None", context.text)
        self.assertNotIn("undefined", context.text)

    async def test_unknown_dishes(self):
        context = await assemble_context(NutritionRecord())
        self.assertTrue(context.text.startswith("Detected dishes: unknown\n"))

    async def test_history(self):
        history = [
            ChatMessageSchema(role="user", content="Is this healthy?"),
            ChatMessageSchema(role="assistant", content="Mostly, yes."),
        ]
        context = await assemble_context(RECORD, history)
        self.assertTrue(context.text.endswith(
            "Conversation so far:\nuser: Is this healthy?\nassistant: Mostly, yes."
        ))

    async def test_client_image_is_reencoded_and_attached(self):
        with patch("mealvision.services.context_assembler.fetch_image", new=AsyncMock()) as fetch:
            context = await assemble_context(RECORD, image_url="https://example.com/a.png", image_bytes=make_png())
        fetch.assert_not_called()
        self.assertTrue(context.image_part["image_url"]["url"].startswith("data:image/jpeg;base64,"))

    async def test_stored_image_is_fetched(self):
        record = RECORD.model_copy(update={"image_url": "https://example.com/meal.png"})
        with patch("mealvision.services.context_assembler.fetch_image",
                   new=AsyncMock(return_value=make_png())) as fetch:
            context = await assemble_context(record)
        fetch.assert_awaited_once_with("https://example.com/meal.png")
        self.assertIsNotNone(context.image_part)

    async def test_fetch_failure_gives_text_only(self):
        record = RECORD.model_copy(update={"image_url": "https://example.com/gone.png"})
        with patch("mealvision.services.context_assembler.fetch_image", new=AsyncMock(return_value=None)):
            context = await assemble_context(record)
        self.assertIsNone(context.image_part)
        self.assertIn("Calories: 640kcal", context.text)

    async def test_undecodable_image_gives_text_only(self):
        context = await assemble_context(RECORD, image_bytes=b"not an image")
        self.assertIsNone(context.image_part)

    async def test_decompression_bomb_gives_text_only(self):
        # 40x30 is past twice this pixel limit, which Pillow treats as a bomb
        with patch.object(Image, "MAX_IMAGE_PIXELS", 500):
            context = await assemble_context(NutritionRecord(), image_bytes=make_png())
        self.assertIsNone(context.image_part)
        self.assertTrue(context.text.startswith("Detected dishes: unknown\n"))


STORAGE = "https://proj.supabase.co"
BUCKET_URL = f"{STORAGE}/storage/v1/object/public/meal-images/user-1/meal.png"


@patch("mealvision.services.context_assembler.SUPABASE_BUCKET", "meal-images")
@patch("mealvision.services.context_assembler.SUPABASE_URL", STORAGE)
class TestFetchImage(unittest.IsolatedAsyncioTestCase):

    def transport(self, response):
        self.requested = []

        def handler(request):
            self.requested.append(str(request.url))
            return response

        return httpx.MockTransport(handler)

    async def test_bucket_image(self):
        png = make_png()
        transport = self.transport(httpx.Response(200, content=png))
        self.assertEqual(await fetch_image(BUCKET_URL, transport=transport), png)
        self.assertEqual(self.requested, [BUCKET_URL])

    async def test_foreign_host_is_not_requested(self):
        transport = self.transport(httpx.Response(200, content=make_png()))
        for url in (
            "http://169.254.169.254/latest/meta-data/",
            "https://proj.supabase.co.evil.example/storage/v1/object/public/meal-images/a.png",
            f"{STORAGE}/storage/v1/object/public/other-bucket/a.png",
        ):
            self.assertIsNone(await fetch_image(url, transport=transport))
        self.assertEqual(self.requested, [])

    async def test_redirect_is_not_followed(self):
        transport = self.transport(httpx.Response(302, headers={"location": "http://10.0.0.1/"}))
        self.assertIsNone(await fetch_image(BUCKET_URL, transport=transport))
        self.assertEqual(self.requested, [BUCKET_URL])

    async def test_oversized_body(self):
        transport = self.transport(httpx.Response(200, content=b"x" * 64))
        with patch("mealvision.services.context_assembler.MAX_UPLOAD_BYTES", 16):
            self.assertIsNone(await fetch_image(BUCKET_URL, transport=transport))

    async def test_oversized_stream_without_length(self):
        async def body():
            for _ in range(8):
                yield b"x" * 8

        transport = self.transport(httpx.Response(200, content=body()))
        with patch("mealvision.services.context_assembler.MAX_UPLOAD_BYTES", 16):
            self.assertIsNone(await fetch_image(BUCKET_URL, transport=transport))

    async def test_transport_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        self.assertIsNone(await fetch_image(BUCKET_URL, transport=httpx.MockTransport(handler)))

    async def test_unconfigured_storage_fetches_nothing(self):
        transport = self.transport(httpx.Response(200, content=make_png()))
        with patch("mealvision.services.context_assembler.SUPABASE_URL", None):
            self.assertIsNone(await fetch_image(BUCKET_URL, transport=transport))
        self.assertEqual(self.requested, [])


if __name__ == '__main__':
    unittest.main()

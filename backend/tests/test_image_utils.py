import base64
import io
import unittest

from PIL import Image

from mealvision.exceptions import InvalidImageError
from mealvision.utils.image_utils import (
    decode_base64_image,
    image_content_part,
    normalize_mime_type,
    reencode_image,
)


def make_image(size=(2000, 1000), mode="RGB", fmt="PNG"):
    color = (200, 100, 50, 128) if mode == "RGBA" else (200, 100, 50)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class TestMimeTypes(unittest.TestCase):

    def test_allowed(self):
        self.assertEqual(normalize_mime_type("image/png"), "image/png")
        self.assertEqual(normalize_mime_type("IMAGE/WEBP"), "image/webp")
        self.assertEqual(normalize_mime_type("image/jpg"), "image/jpeg")

    def test_rejected(self):
        for mime in ("application/pdf", "", None, "image/tiff"):
            with self.assertRaises(InvalidImageError):
                normalize_mime_type(mime)


class TestBase64(unittest.TestCase):

    def test_decode_with_and_without_data_url_header(self):
        raw = b"\x89PNG fake"
        encoded = base64.b64encode(raw).decode()
        self.assertEqual(decode_base64_image(encoded), raw)
        self.assertEqual(decode_base64_image(f"data:image/png;base64,{encoded}"), raw)

    def test_decode_garbage(self):
        with self.assertRaises(InvalidImageError):
            decode_base64_image("not base64 at all!")

    def test_content_part(self):
        part = image_content_part(b"abc", "image/jpeg")
        self.assertEqual(part["type"], "image_url")
        self.assertEqual(part["image_url"]["url"], "data:image/jpeg;base64,YWJj")


class TestReencode(unittest.TestCase):

    def test_large_image_is_bounded_and_keeps_aspect(self):
        result = reencode_image(make_image((2000, 1000)), max_dimension=1024, quality=80)
        img = Image.open(io.BytesIO(result))
        self.assertEqual(img.format, "JPEG")
        self.assertEqual(img.size, (1024, 512))

    def test_small_image_is_not_upscaled(self):
        result = reencode_image(make_image((300, 200)), max_dimension=1024, quality=80)
        self.assertEqual(Image.open(io.BytesIO(result)).size, (300, 200))

    def test_transparency_is_flattened(self):
        result = reencode_image(make_image((50, 50), mode="RGBA"), max_dimension=1024, quality=80)
        self.assertEqual(Image.open(io.BytesIO(result)).mode, "RGB")

    def test_undecodable_bytes(self):
        with self.assertRaises(InvalidImageError):
            reencode_image(b"definitely not an image", max_dimension=1024, quality=80)

    def test_bad_arguments(self):
        data = make_image((10, 10))
        with self.assertRaises(ValueError):
            reencode_image(data, max_dimension=0, quality=80)
        with self.assertRaises(ValueError):
            reencode_image(data, max_dimension=100, quality=0)


if __name__ == '__main__':
    unittest.main()

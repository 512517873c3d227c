import os
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import storage  # noqa: E402
from db.errors import ValidationError  # noqa: E402
from utils import settings  # noqa: E402


class StorageTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self._saved = (settings.STORAGE_DIR, settings.STORAGE_PUBLIC_URL)
        settings.STORAGE_DIR = os.path.join(self.temp_dir.name, "storage")
        settings.STORAGE_PUBLIC_URL = ""

        self.image = os.path.join(self.temp_dir.name, "Photo.PNG")
        with open(self.image, "wb") as f:
            f.write(b"\x89PNG fake image bytes")

    def tearDown(self):
        settings.STORAGE_DIR, settings.STORAGE_PUBLIC_URL = self._saved
        self.temp_dir.cleanup()

    async def test_upload_stores_copy_under_random_name(self):
        url = await storage.upload_image(self.image)
        self.assertTrue(url.startswith("file://"))

        stored = os.listdir(os.path.join(settings.STORAGE_DIR, settings.STORAGE_BUCKET))
        self.assertEqual(len(stored), 1)
        stem, ext = os.path.splitext(stored[0])
        self.assertEqual(ext, ".png")
        self.assertEqual(len(stem), 13)
        self.assertTrue(stem.isalnum() and stem == stem.lower())
        self.assertTrue(url.endswith(stored[0]))

        path = Path(settings.STORAGE_DIR, settings.STORAGE_BUCKET, stored[0])
        self.assertEqual(path.read_bytes(), b"\x89PNG fake image bytes")

    async def test_uploads_never_overwrite(self):
        first = await storage.upload_image(self.image)
        second = await storage.upload_image(self.image, bucket="banners")
        third = await storage.upload_image(self.image, bucket="banners")
        self.assertEqual(len({first, second, third}), 3)
        self.assertEqual(len(os.listdir(os.path.join(settings.STORAGE_DIR, "banners"))), 2)

    async def test_public_url_prefix(self):
        settings.STORAGE_PUBLIC_URL = "https://cdn.example.com/storage/"
        url = await storage.upload_image(self.image)
        self.assertTrue(url.startswith(f"https://cdn.example.com/storage/{settings.STORAGE_BUCKET}/"))
        self.assertEqual(storage.public_url("b", "x.png"), "https://cdn.example.com/storage/b/x.png")

    async def test_rejects_bad_files(self):
        doc = os.path.join(self.temp_dir.name, "notes.pdf")
        with open(doc, "wb") as f:
            f.write(b"%PDF")
        with self.assertRaises(ValidationError) as ctx:
            await storage.upload_image(doc)
        self.assertEqual(str(ctx.exception), "Only PNG, JPG and WEBP images are supported.")

        with self.assertRaises(ValidationError):
            await storage.upload_image(os.path.join(self.temp_dir.name, "missing.jpg"))
        with self.assertRaises(ValidationError):
            await storage.upload_image("")
        self.assertFalse(os.path.exists(settings.STORAGE_DIR))


if __name__ == "__main__":
    unittest.main()

"""Tests for the poll icon upload."""

# pylint: disable=missing-function-docstring, import-error
import io
import os

from PIL import Image

from tests.support import ADMIN_TOKEN, AppTestCase

AUTH = {"X-Admin-Token": ADMIN_TOKEN}


def _image_bytes(size=(800, 400), fmt="PNG", mode="RGBA"):
    buf = io.BytesIO()
    Image.new(mode, size, (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)).save(buf, format=fmt)
    buf.seek(0)
    return buf


class UploadImageTest(AppTestCase):

    def _upload(self, stream, name="icone.png"):
        return self.client.post("/api/admin/upload-image", headers=AUTH,
                                data={"file": (stream, name)}, content_type="multipart/form-data")

    def test_upload_resizes_and_serves(self):
        resp = self._upload(_image_bytes())
        self.assertEqual(resp.status_code, 201)
        url = resp.get_json()["url"]
        self.assertTrue(url.startswith("/uploads/poll-icon-"))
        self.assertTrue(url.endswith(".png"))

        name = url.rsplit("/", 1)[1]
        with Image.open(os.path.join(self.app.config["UPLOAD_DIR"], name)) as img:
            self.assertEqual(img.size, (512, 256))

        served = self.client.get(url)
        self.assertEqual(served.status_code, 200)
        served.close()

    def test_jpeg_is_kept_as_jpeg(self):
        resp = self._upload(_image_bytes(size=(64, 64), fmt="JPEG", mode="RGB"), name="foto.jpeg")
        self.assertTrue(resp.get_json()["url"].endswith(".jpg"))

    def test_missing_file(self):
        resp = self.client.post("/api/admin/upload-image", headers=AUTH, data={})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "missing_file")

    def test_not_an_image(self):
        resp = self._upload(io.BytesIO(b"isto nao e imagem"), name="x.png")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "invalid_image")

    def test_too_large(self):
        self.app.config["MAX_UPLOAD_BYTES"] = 100
        resp = self._upload(_image_bytes())
        self.assertEqual(resp.status_code, 413)
        self.assertEqual(resp.get_json()["error"], "file_too_large")

    def test_requires_admin(self):
        resp = self.client.post("/api/admin/upload-image", data={"file": (_image_bytes(), "a.png")},
                                content_type="multipart/form-data")
        self.assertEqual(resp.status_code, 401)

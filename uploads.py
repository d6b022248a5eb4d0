"""Upload do ícone da pesquisa (validado e reduzido com Pillow)."""
import io
import time
from pathlib import Path

from flask import current_app, url_for
from PIL import Image, UnidentifiedImageError

from errors import ApiError

ALLOWED_FORMATS = {"PNG": "png", "JPEG": "jpg", "GIF": "gif", "WEBP": "webp"}
MAX_SIDE = 512


def upload_dir() -> Path:
    return Path(current_app.config["UPLOAD_DIR"])


def save_poll_icon(file_storage) -> str:
    """Grava o ícone como poll-icon-<millis>.<ext> e devolve a URL pública."""
    if file_storage is None or not file_storage.filename:
        raise ApiError("missing_file")

    raw = file_storage.read(current_app.config["MAX_UPLOAD_BYTES"] + 1)
    if len(raw) > current_app.config["MAX_UPLOAD_BYTES"]:
        raise ApiError("file_too_large", status=413)

    try:
        with Image.open(io.BytesIO(raw)) as probe:
            probe.verify()
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ApiError("invalid_image", details=str(e)) from e

    ext = ALLOWED_FORMATS.get(img.format)
    if not ext:
        raise ApiError("invalid_image", details=f"formato não suportado: {img.format}")

    fmt = img.format
    if img.width > MAX_SIDE or img.height > MAX_SIDE:
        img.thumbnail((MAX_SIDE, MAX_SIDE))
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    name = f"poll-icon-{int(time.time() * 1000)}.{ext}"
    dest = upload_dir()
    dest.mkdir(parents=True, exist_ok=True)
    img.save(dest / name, format=fmt)
    current_app.logger.info("poll icon saved %s (%sx%s)", name, img.width, img.height)
    return url_for("uploaded_file", filename=name)

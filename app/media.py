import secrets
import time
from pathlib import Path

from .config import settings
from .errors import ValidationError

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".mp4", ".mov", ".avi", ".webm"}
READ_CHUNK_BYTES = 1024 * 1024


def gallery_dir() -> Path:
    path = Path(settings.GALLERY_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def classify_upload(original_name: str, content_type: str | None) -> str:
    ext = Path(original_name or "").suffix.lower()
    mime = (content_type or "").lower()
    if ext not in ALLOWED_EXTENSIONS or not mime.startswith(("image/", "video/")):
        raise ValidationError("Only images and videos are allowed!")
    return "video" if mime.startswith("video/") else "image"


def upload_limit_bytes() -> int:
    return max(1, int(settings.GALLERY_MAX_UPLOAD_MB)) * 1024 * 1024


def _too_large() -> ValidationError:
    return ValidationError(f"File exceeds {settings.GALLERY_MAX_UPLOAD_MB}MB limit")


async def read_upload(upload, chunk_size: int = READ_CHUNK_BYTES) -> bytes:
    """Read an `UploadFile`, stopping as soon as the size limit is passed."""
    limit = upload_limit_bytes()
    if upload.size is not None and upload.size > limit:
        raise _too_large()
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _too_large()
        chunks.append(chunk)
    return b"".join(chunks)


def save_upload(original_name: str, content: bytes) -> str:
    if len(content) > upload_limit_bytes():
        raise _too_large()
    filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{Path(original_name).suffix.lower()}"
    (gallery_dir() / filename).write_bytes(content)
    return filename


def remove_upload(filename: str) -> bool:
    path = gallery_dir() / Path(filename).name
    if path.exists():
        path.unlink()
        return True
    return False

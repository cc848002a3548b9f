from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

OCR_MAX_WIDTH = 1200
OCR_LANGUAGE = "eng"

PRESCRIPTION_MIME_TYPES = ["application/pdf", "image/jpeg", "image/png", "image/gif", "image/webp"]
STRIP_IMAGE_MIME_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
UPLOAD_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp"}


class IngestionError(Exception):
    pass


@dataclass
class UploadedFile:
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return file_extension(self.name)

    @property
    def is_pdf(self) -> bool:
        return self.content_type == "application/pdf"


def file_extension(file_name: str) -> str:
    return Path(file_name).suffix.lower().strip()


def validate_file_type(upload: UploadedFile, allowed_types: list[str]) -> bool:
    return upload.content_type in allowed_types


def has_upload_extension(upload: UploadedFile) -> bool:
    return upload.extension in UPLOAD_EXTENSIONS


def format_file_size(num_bytes: int) -> str:
    sizes = ["Bytes", "KB", "MB", "GB"]
    if num_bytes <= 0:
        return "0 Bytes"
    index = min(int(math.floor(math.log(num_bytes, 1024))), len(sizes) - 1)
    value = round(num_bytes / (1024**index), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {sizes[index]}"


def extract_text_from_pdf(pdf_bytes: bytes) -> str:
    from pypdf import PdfReader

    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:
        logger.error("PDF text extraction error: %s", exc)
        raise IngestionError("Failed to extract text from PDF. Please try uploading an image instead.") from exc
    return "\n".join(part.strip() for part in pages if part.strip())


def prepare_image_for_ocr(image_bytes: bytes) -> Image.Image:
    """Resize to at most OCR_MAX_WIDTH wide, greyscale, stretch contrast and sharpen."""
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise IngestionError("Failed to extract text from image") from exc

    image = ImageOps.exif_transpose(image)
    width, height = image.size
    if width > OCR_MAX_WIDTH:
        scaled_height = max(1, round(height * OCR_MAX_WIDTH / width))
        image = image.resize((OCR_MAX_WIDTH, scaled_height), Image.LANCZOS)
    image = ImageOps.grayscale(image)
    image = ImageOps.autocontrast(image)
    return image.filter(ImageFilter.SHARPEN)


def extract_text_from_image(image_bytes: bytes) -> str:
    import pytesseract

    image = prepare_image_for_ocr(image_bytes)
    try:
        text = pytesseract.image_to_string(image, lang=OCR_LANGUAGE)
    except Exception as exc:
        logger.error("Image OCR error: %s", exc)
        raise IngestionError("Failed to extract text from image") from exc
    return text or ""


def extract_text(upload: UploadedFile) -> str:
    if upload.is_pdf:
        return extract_text_from_pdf(upload.data)
    return extract_text_from_image(upload.data)


def truncate_excerpt(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")

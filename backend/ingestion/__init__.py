from .files import (
    PRESCRIPTION_MIME_TYPES,
    STRIP_IMAGE_MIME_TYPES,
    UPLOAD_EXTENSIONS,
    IngestionError,
    UploadedFile,
    extract_text,
    extract_text_from_image,
    extract_text_from_pdf,
    format_file_size,
    has_upload_extension,
    prepare_image_for_ocr,
    truncate_excerpt,
    validate_file_type,
)

__all__ = [
    "PRESCRIPTION_MIME_TYPES",
    "STRIP_IMAGE_MIME_TYPES",
    "UPLOAD_EXTENSIONS",
    "IngestionError",
    "UploadedFile",
    "extract_text",
    "extract_text_from_image",
    "extract_text_from_pdf",
    "format_file_size",
    "has_upload_extension",
    "prepare_image_for_ocr",
    "truncate_excerpt",
    "validate_file_type",
]

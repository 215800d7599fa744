"""
Content type negotiation between the queue server and the agent
"""

from pathlib import Path
from typing import Optional

# MIME type -> file extension for printable artifacts
MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/gif": ".gif",
    "image/tiff": ".tiff",
}

EXTENSION_MIMES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".gif": "image/gif",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp", ".tif", ".tiff"}
OFFICE_EXTENSIONS = {".doc", ".docx", ".ppt", ".pptx", ".xls", ".xlsx", ".odt", ".ods", ".odp", ".rtf"}

KIND_PDF = "pdf"
KIND_IMAGE = "image"
KIND_OFFICE = "office"
KIND_OTHER = "other"


def extension_for_content_type(content_type: Optional[str]) -> str:
    """Map a Content-Type header to an extension, '' when unknown"""
    if not content_type:
        return ""
    mime = content_type.split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(mime, "")


def media_type_for_path(path: str) -> str:
    return EXTENSION_MIMES.get(Path(path).suffix.lower(), "application/octet-stream")


def detect_kind(filename: str, content_type: Optional[str] = None) -> str:
    """Classify an upload as pdf, image, office document or other"""
    suffix = Path(filename or "").suffix.lower()
    mime = (content_type or "").split(";", 1)[0].strip().lower()

    if suffix == ".pdf" or mime == "application/pdf":
        return KIND_PDF
    if suffix in IMAGE_EXTENSIONS or mime.startswith("image/"):
        return KIND_IMAGE
    if suffix in OFFICE_EXTENSIONS:
        return KIND_OFFICE
    return KIND_OTHER


def download_extension(content_type: Optional[str], fallback_name: Optional[str] = None) -> str:
    """Extension for a downloaded artifact: Content-Type, then the stored name, then .pdf"""
    extension = extension_for_content_type(content_type)
    if extension:
        return extension
    suffix = Path(fallback_name or "").suffix.lower()
    return suffix or ".pdf"

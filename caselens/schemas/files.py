from enum import Enum
from pathlib import PurePosixPath
from typing import Optional
from pydantic import BaseModel


class FileType(str, Enum):
    """Coarse file types; each maps to one extraction strategy."""
    PDF = "pdf"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    TEXT = "text"
    OTHER = "other"


EXTENSION_TYPES = {
    "pdf": FileType.PDF,
    **{ext: FileType.IMAGE for ext in ("png", "jpg", "jpeg", "gif", "webp", "svg", "bmp", "tiff")},
    **{ext: FileType.AUDIO for ext in ("mp3", "wav", "m4a", "ogg", "flac", "aac")},
    **{ext: FileType.VIDEO for ext in ("mp4", "mov", "webm", "avi", "mkv")},
    **{ext: FileType.DOCUMENT for ext in ("doc", "docx", "rtf")},
    **{ext: FileType.TEXT for ext in ("txt", "md", "csv", "json", "xml", "html", "log", "yml", "yaml")},
}

MIME_PREFIX_TYPES = {
    "application/pdf": FileType.PDF,
    "image/": FileType.IMAGE,
    "audio/": FileType.AUDIO,
    "video/": FileType.VIDEO,
    "text/": FileType.TEXT,
    "application/json": FileType.TEXT,
    "application/xml": FileType.TEXT,
}


def detect_file_type(
    file_name: str,
    declared_type: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> FileType:
    """
    Resolve the coarse type of a file.

    The declared type wins when it is one of ours, then the MIME type,
    then the file extension.
    """
    if declared_type:
        try:
            return FileType(declared_type.lower())
        except ValueError:
            # Callers sometimes store a MIME type in the type column
            mime_type = mime_type or declared_type

    if mime_type:
        lowered = mime_type.lower()
        for prefix, file_type in MIME_PREFIX_TYPES.items():
            if lowered.startswith(prefix):
                return file_type

    suffix = PurePosixPath(file_name).suffix.lower().lstrip(".")
    return EXTENSION_TYPES.get(suffix, FileType.OTHER)


class FileContext(BaseModel):
    """A file the user attached to a chat message."""
    name: str
    path: str
    type: Optional[str] = None

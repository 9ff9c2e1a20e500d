"""
Scoped file storage for avatars and note attachments.

Every file lives directly under the root of its category with a generated
name (``uuid4().hex`` plus the lower-cased extension of the uploaded name).
Names coming back from clients or from the database are only ever turned
into paths through :func:`resolve_path`.
"""
import logging
import os
import shutil
import unicodedata
import uuid
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, FrozenSet, Optional, Union
from urllib.parse import unquote

from notes_backend.api.errors import (
    EmptyFile,
    FileTooLarge,
    InvalidPath,
    IOFailure,
    NotFound,
    UnsupportedType,
)

logger = logging.getLogger(__name__)


class StorageCategory(str, Enum):
    AVATAR = "avatar"
    ATTACHMENT = "attachment"


IMAGE_CONTENT_TYPES: FrozenSet[str] = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
})

ATTACHMENT_CONTENT_TYPES: FrozenSet[str] = IMAGE_CONTENT_TYPES | {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "text/csv",
}

ALLOWED_CONTENT_TYPES: Dict[StorageCategory, FrozenSet[str]] = {
    StorageCategory.AVATAR: IMAGE_CONTENT_TYPES,
    StorageCategory.ATTACHMENT: ATTACHMENT_CONTENT_TYPES,
}

UNSUPPORTED_TYPE_MESSAGES = {
    StorageCategory.AVATAR: "Only image files (JPEG, PNG, GIF, WebP) are allowed",
    StorageCategory.ATTACHMENT: "File type not allowed. Allowed types: PDF, DOC, DOCX, TXT, CSV, and images",
}

_FORBIDDEN_SEQUENCES = ("..", "/", "\\", "\x00")
_MAX_DECODE_ROUNDS = 3


def _decoded_forms(candidate: str):
    """Yield the raw name, its percent-decoded forms and their NFKC forms."""
    current = candidate
    for _ in range(_MAX_DECODE_ROUNDS + 1):
        yield current
        yield unicodedata.normalize("NFKC", current)
        decoded = unquote(current)
        if decoded == current:
            break
        current = decoded


# PUBLIC_INTERFACE
def is_safe_name(candidate: Optional[str]) -> bool:
    """True when ``candidate`` is a bare file name with no traversal in any encoding."""
    if not candidate:
        return False
    for form in _decoded_forms(candidate):
        if any(seq in form for seq in _FORBIDDEN_SEQUENCES):
            return False
    return True


# PUBLIC_INTERFACE
def resolve_path(root: Path, candidate: Optional[str]) -> Path:
    """
    Resolve ``candidate`` against ``root`` (already absolute and resolved).

    Raises InvalidPath when the name carries a separator or ``..`` (raw,
    percent-encoded or in a Unicode look-alike form), or when the resolved
    path, symlinks followed, is not strictly inside ``root``.
    """
    if not is_safe_name(candidate):
        raise InvalidPath()
    target = (root / candidate).resolve()
    if target == root or root not in target.parents:
        raise InvalidPath()
    return target


# PUBLIC_INTERFACE
def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    """Lower-case the media type and drop parameters such as ``charset``."""
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type or None


# PUBLIC_INTERFACE
def validate_upload(
    category: StorageCategory,
    content_type: Optional[str],
    size: int,
    max_bytes: Optional[int] = None,
) -> str:
    """
    Check an upload before anything touches the disk.

    Only the declared content type is checked; the bytes are not sniffed.
    Returns the normalized media type.
    """
    if size <= 0:
        raise EmptyFile()
    if max_bytes is not None and size > max_bytes:
        raise FileTooLarge(f"The uploaded file exceeds the maximum allowed size of {max_bytes} bytes")
    media_type = normalize_content_type(content_type)
    if media_type is None or media_type not in ALLOWED_CONTENT_TYPES[category]:
        raise UnsupportedType(UNSUPPORTED_TYPE_MESSAGES[category])
    return media_type


# PUBLIC_INTERFACE
def derive_extension(original_name: Optional[str]) -> str:
    """``report.final.PDF`` -> ``.pdf``; no dot -> empty string."""
    if not original_name or "." not in original_name:
        return ""
    return original_name[original_name.rindex("."):].lower()


# PUBLIC_INTERFACE
def stream_size(stream: BinaryIO) -> int:
    """Size of a seekable binary stream; the read position is left unchanged."""
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


class FileStorage:
    """Stores files under one root directory per :class:`StorageCategory`."""

    def __init__(self, avatar_dir, attachment_dir, max_upload_bytes: Optional[int] = None):
        self.max_upload_bytes = max_upload_bytes
        self._roots: Dict[StorageCategory, Path] = {
            StorageCategory.AVATAR: Path(avatar_dir).resolve(),
            StorageCategory.ATTACHMENT: Path(attachment_dir).resolve(),
        }
        for category, root in self._roots.items():
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.error("Could not create %s storage directory %s", category.value, root)
                raise IOFailure("Could not create the directory where uploaded files will be stored") from exc
        logger.info(
            "File storage ready: avatars=%s attachments=%s",
            self._roots[StorageCategory.AVATAR],
            self._roots[StorageCategory.ATTACHMENT],
        )

    def root(self, category: StorageCategory) -> Path:
        return self._roots[category]

    def validate(self, category: StorageCategory, content_type: Optional[str], size: int) -> str:
        return validate_upload(category, content_type, size, self.max_upload_bytes)

    def store(
        self,
        category: StorageCategory,
        original_name: Optional[str],
        content_type: Optional[str],
        data: Union[bytes, BinaryIO],
    ) -> str:
        """
        Write ``data`` under a freshly generated name and return that name.

        ``content_type`` is expected to have gone through :meth:`validate`
        already; it is only used for logging here.
        """
        generated = uuid.uuid4().hex + derive_extension(original_name)
        target = resolve_path(self.root(category), generated)
        try:
            with open(target, "wb") as fh:
                if isinstance(data, (bytes, bytearray)):
                    fh.write(data)
                else:
                    shutil.copyfileobj(data, fh)
        except OSError as exc:
            logger.error("Could not store %s file %s", category.value, generated, exc_info=exc)
            try:
                target.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove partial file %s", generated)
            raise IOFailure("Could not store file. Please try again!") from exc
        logger.info("Stored %s file %s (%s)", category.value, generated, content_type)
        return generated

    def load(self, category: StorageCategory, name: str) -> Path:
        """Path of a stored, readable file; NotFound otherwise."""
        target = resolve_path(self.root(category), name)
        if not target.is_file() or not os.access(target, os.R_OK):
            raise NotFound("File not found or not readable")
        return target

    def delete(self, category: StorageCategory, name: str) -> None:
        """Best-effort removal. Never raises; a missing file is a no-op."""
        try:
            target = resolve_path(self.root(category), name)
        except InvalidPath:
            logger.warning("Refusing to delete unsafe %s file name %r", category.value, name)
            return
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete %s file %s: %s", category.value, name, exc)
            return
        logger.info("Deleted %s file %s", category.value, name)

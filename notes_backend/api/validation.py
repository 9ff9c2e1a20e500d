"""
Explicit request validation.

Each ``validate_*`` function returns a list of field errors (empty when the
input is acceptable). Callers pass the result to :func:`ensure_valid` before
touching the database.
"""
from dataclasses import dataclass
from typing import List, Optional

from notes_backend.api.errors import ValidationFailed
from notes_backend.api.schemas import Credentials, NoteCreate, NoteUpdate, ProfileUpdate

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
AVATAR_URL_MAX_LENGTH = 500


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _check_title(title: str, errors: List[FieldError]) -> None:
    if _is_blank(title):
        errors.append(FieldError("title", "Title is required"))
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(FieldError("title", f"Title must be between 1 and {TITLE_MAX_LENGTH} characters"))


# PUBLIC_INTERFACE
def validate_registration(payload: Credentials) -> List[FieldError]:
    """Username 3-50 characters, password at least 6."""
    errors = []
    if _is_blank(payload.username):
        errors.append(FieldError("username", "Username is required"))
    elif not USERNAME_MIN_LENGTH <= len(payload.username) <= USERNAME_MAX_LENGTH:
        errors.append(FieldError(
            "username",
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters",
        ))
    if _is_blank(payload.password):
        errors.append(FieldError("password", "Password is required"))
    elif len(payload.password) < PASSWORD_MIN_LENGTH:
        errors.append(FieldError("password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters"))
    return errors


# PUBLIC_INTERFACE
def validate_login(payload: Credentials) -> List[FieldError]:
    errors = []
    if _is_blank(payload.username):
        errors.append(FieldError("username", "Username is required"))
    if not payload.password:
        errors.append(FieldError("password", "Password is required"))
    return errors


# PUBLIC_INTERFACE
def validate_note_create(payload: NoteCreate) -> List[FieldError]:
    errors = []
    _check_title(payload.title, errors)
    if _is_blank(payload.content):
        errors.append(FieldError("content", "Content is required"))
    return errors


# PUBLIC_INTERFACE
def validate_note_update(payload: NoteUpdate) -> List[FieldError]:
    """Fields are optional, but the ones supplied must still be valid."""
    errors = []
    if payload.title is not None:
        _check_title(payload.title, errors)
    if payload.content is not None and _is_blank(payload.content):
        errors.append(FieldError("content", "Content must not be blank"))
    return errors


# PUBLIC_INTERFACE
def validate_profile_update(payload: ProfileUpdate) -> List[FieldError]:
    errors = []
    if payload.description is not None and len(payload.description) > DESCRIPTION_MAX_LENGTH:
        errors.append(FieldError(
            "description", f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters"
        ))
    if payload.avatar_url is not None and len(payload.avatar_url) > AVATAR_URL_MAX_LENGTH:
        errors.append(FieldError(
            "avatar_url", f"Avatar URL must not exceed {AVATAR_URL_MAX_LENGTH} characters"
        ))
    return errors


# PUBLIC_INTERFACE
def ensure_valid(errors: List[FieldError]) -> None:
    """Raise ValidationFailed carrying ``errors`` if there are any."""
    if errors:
        raise ValidationFailed(errors)

import logging
import os
from datetime import datetime, timedelta
from typing import BinaryIO, List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from notes_backend.api import config
from notes_backend.api.errors import AuthenticationFailed, Conflict, NotFound
from notes_backend.api.schemas import (
    Credentials,
    NoteCreate,
    NoteOut,
    NoteUpdate,
    ProfileUpdate,
)
from notes_backend.api.storage import FileStorage, StorageCategory, stream_size
from notes_backend.api.validation import (
    ensure_valid,
    validate_login,
    validate_note_create,
    validate_note_update,
    validate_profile_update,
    validate_registration,
)
from notes_database.db import get_db
from notes_database.models import Note, NoteAttachment, User

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

_storage: Optional[FileStorage] = None


# PUBLIC_INTERFACE
def get_storage() -> FileStorage:
    """Resolve or initialize the process-wide FileStorage."""
    global _storage
    if _storage is None:
        _storage = FileStorage(
            avatar_dir=config.AVATAR_UPLOAD_DIR,
            attachment_dir=config.ATTACHMENT_UPLOAD_DIR,
            max_upload_bytes=config.MAX_UPLOAD_BYTES,
        )
    return _storage


# ==== Auth utilities ====

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


# PUBLIC_INTERFACE
def create_access_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    """Generates a JWT access token whose subject is the username."""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": username, "iat": datetime.utcnow(), "exp": expire}
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = get_user_by_username(db, username)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


# PUBLIC_INTERFACE
def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Decodes the bearer JWT and loads its user, 401 otherwise."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        username = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    user = get_user_by_username(db, username)
    if user is None:
        raise credentials_exception
    return user


# PUBLIC_INTERFACE
def register_user(db: Session, payload: Credentials) -> User:
    """Create a user; Conflict if the username is taken."""
    ensure_valid(validate_registration(payload))
    if get_user_by_username(db, payload.username):
        raise Conflict("Username already exists")
    user = User(
        username=payload.username,
        hashed_password=get_password_hash(payload.password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same name
        db.rollback()
        raise Conflict("Username already exists")
    db.refresh(user)
    logger.info("Registered user %s", user.username)
    return user


# PUBLIC_INTERFACE
def login_user(db: Session, payload: Credentials) -> User:
    ensure_valid(validate_login(payload))
    user = authenticate_user(db, payload.username, payload.password)
    if not user:
        raise AuthenticationFailed()
    return user


# ==== Users and profiles ====

def get_user_or_404(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.id).all()


def avatar_name_from_url(url: Optional[str]) -> Optional[str]:
    """Generated avatar name for URLs served from our avatar root, else None."""
    if url and url.startswith(config.AVATAR_URL_PREFIX):
        return url[len(config.AVATAR_URL_PREFIX):]
    return None


# PUBLIC_INTERFACE
def update_profile(db: Session, storage: FileStorage, user: User, payload: ProfileUpdate) -> User:
    """
    Update description and/or avatar URL.

    When the avatar changes away from a file we host and no other profile
    points at that file, it is removed best-effort after the commit.
    """
    ensure_valid(validate_profile_update(payload))
    previous_url = None
    if payload.description is not None:
        user.description = payload.description
    if payload.avatar_url is not None and payload.avatar_url != user.avatar_url:
        previous_url = user.avatar_url
        user.avatar_url = payload.avatar_url
    db.commit()
    db.refresh(user)
    replaced_avatar = avatar_name_from_url(previous_url)
    if replaced_avatar and not db.query(User).filter(User.avatar_url == previous_url).count():
        storage.delete(StorageCategory.AVATAR, replaced_avatar)
    return user


# PUBLIC_INTERFACE
def upload_avatar(
    storage: FileStorage,
    original_name: Optional[str],
    content_type: Optional[str],
    stream: BinaryIO,
) -> str:
    """Validate and store an avatar image, returning its public URL."""
    storage.validate(StorageCategory.AVATAR, content_type, stream_size(stream))
    generated = storage.store(StorageCategory.AVATAR, original_name, content_type, stream)
    return config.AVATAR_URL_PREFIX + generated


# ==== Notes ====

# PUBLIC_INTERFACE
def note_out(note: Note, owner: User) -> NoteOut:
    return NoteOut(
        id=note.id,
        title=note.title,
        content=note.content,
        is_public=note.is_public,
        user_id=note.user_id,
        username=owner.username,
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


# PUBLIC_INTERFACE
def get_owned_note(db: Session, user: User, note_id: int) -> Note:
    """
    Single owner-scoped lookup. A note that does not exist and a note owned
    by someone else both raise NotFound.
    """
    note = db.query(Note).filter(Note.id == note_id, Note.user_id == user.id).first()
    if not note:
        raise NotFound("Note not found")
    return note


# PUBLIC_INTERFACE
def create_note(db: Session, user: User, payload: NoteCreate) -> Note:
    ensure_valid(validate_note_create(payload))
    note = Note(
        title=payload.title,
        content=payload.content,
        is_public=bool(payload.is_public),
        user_id=user.id,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def escape_like(term: str) -> str:
    """Make ``%`` and ``_`` match literally in a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# PUBLIC_INTERFACE
def list_notes(db: Session, user: User, q: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Note]:
    """Own notes, most recently updated first, optionally filtered by ``q``."""
    query = db.query(Note).filter(Note.user_id == user.id)
    if q:
        search = f"%{escape_like(q)}%"
        query = query.filter(
            (Note.title.ilike(search, escape="\\")) | (Note.content.ilike(search, escape="\\"))
        )
    return query.order_by(Note.updated_at.desc(), Note.id.desc()).offset(skip).limit(limit).all()


# PUBLIC_INTERFACE
def list_public_notes(db: Session, username: str) -> Tuple[User, List[Note]]:
    """Public notes of ``username`` together with that user."""
    owner = get_user_by_username(db, username)
    if owner is None:
        raise NotFound("User not found")
    notes = (
        db.query(Note)
        .filter(Note.user_id == owner.id, Note.is_public.is_(True))
        .order_by(Note.updated_at.desc(), Note.id.desc())
        .all()
    )
    return owner, notes


# PUBLIC_INTERFACE
def update_note(db: Session, user: User, note_id: int, payload: NoteUpdate) -> Note:
    note = get_owned_note(db, user, note_id)
    ensure_valid(validate_note_update(payload))
    if payload.title is not None:
        note.title = payload.title
    if payload.content is not None:
        note.content = payload.content
    if payload.is_public is not None:
        note.is_public = payload.is_public
    note.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(note)
    return note


# PUBLIC_INTERFACE
def delete_note(db: Session, storage: FileStorage, user: User, note_id: int) -> None:
    """
    Delete a note together with its attachments. Stored files are removed
    best-effort first; the records go regardless.
    """
    note = get_owned_note(db, user, note_id)
    attachments = db.query(NoteAttachment).filter(NoteAttachment.note_id == note.id).all()
    for attachment in attachments:
        storage.delete(StorageCategory.ATTACHMENT, attachment.filename)
    for attachment in attachments:
        db.delete(attachment)
    db.delete(note)
    db.commit()
    logger.info("Deleted note %s with %d attachment(s)", note_id, len(attachments))


# ==== Attachments ====

ORIGINAL_FILENAME_MAX = 255


def display_name(name: str) -> str:
    """Clip an uploaded file name to the column width, keeping its extension."""
    if len(name) <= ORIGINAL_FILENAME_MAX:
        return name
    stem, ext = os.path.splitext(name)
    if len(ext) >= ORIGINAL_FILENAME_MAX:
        return name[:ORIGINAL_FILENAME_MAX]
    return stem[:ORIGINAL_FILENAME_MAX - len(ext)] + ext


# PUBLIC_INTERFACE
def authorize_attachment_access(db: Session, user: User, note_id: int, attachment_id: int) -> NoteAttachment:
    """
    Return the attachment only if ``note_id`` is owned by ``user`` and is the
    attachment's parent. Every other combination is NotFound.
    """
    get_owned_note(db, user, note_id)
    attachment = db.get(NoteAttachment, attachment_id)
    if attachment is None:
        raise NotFound("Attachment not found")
    if attachment.note_id != note_id:
        raise NotFound("Attachment not found")
    return attachment


# PUBLIC_INTERFACE
def list_attachments(db: Session, user: User, note_id: int) -> List[NoteAttachment]:
    note = get_owned_note(db, user, note_id)
    return (
        db.query(NoteAttachment)
        .filter(NoteAttachment.note_id == note.id)
        .order_by(NoteAttachment.uploaded_at, NoteAttachment.id)
        .all()
    )


# PUBLIC_INTERFACE
def add_attachment(
    db: Session,
    storage: FileStorage,
    user: User,
    note_id: int,
    original_name: Optional[str],
    content_type: Optional[str],
    stream: BinaryIO,
) -> NoteAttachment:
    """
    Ownership check, validation, store, then record the metadata. The
    record is only written once the bytes are on disk.
    """
    note = get_owned_note(db, user, note_id)
    size = stream_size(stream)
    media_type = storage.validate(StorageCategory.ATTACHMENT, content_type, size)
    generated = storage.store(StorageCategory.ATTACHMENT, original_name, content_type, stream)

    attachment = NoteAttachment(
        filename=generated,
        original_filename=display_name(original_name or generated),
        file_size=size,
        content_type=media_type,
        note_id=note.id,
    )
    try:
        db.add(attachment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        storage.delete(StorageCategory.ATTACHMENT, generated)
        raise
    db.refresh(attachment)
    return attachment


# PUBLIC_INTERFACE
def delete_attachment(db: Session, storage: FileStorage, user: User, note_id: int, attachment_id: int) -> None:
    attachment = authorize_attachment_access(db, user, note_id, attachment_id)
    storage.delete(StorageCategory.ATTACHMENT, attachment.filename)
    db.delete(attachment)
    db.commit()

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, false
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()

# Cross-entity access goes through explicit lookups in notes_backend.api.core,
# so the models only carry plain foreign-key identifiers.


# PUBLIC_INTERFACE
class User(Base):
    """
    SQLAlchemy model for a user of the notes service.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# PUBLIC_INTERFACE
class Note(Base):
    """
    SQLAlchemy model for a note. Private unless ``is_public`` is set.
    """
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    is_public = Column(Boolean, default=False, server_default=false(), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)


# PUBLIC_INTERFACE
class NoteAttachment(Base):
    """
    Metadata for a file attached to a note.

    ``filename`` is the generated storage name; ``original_filename`` is the
    client-supplied name and is only ever used for display.
    """
    __tablename__ = "note_attachments"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(255), unique=True, nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    content_type = Column(String(127), nullable=True)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    note_id = Column(Integer, ForeignKey("notes.id", ondelete="CASCADE"), index=True, nullable=False)

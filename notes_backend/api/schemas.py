from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Request models keep every field optional: presence and length rules are
# checked by notes_backend.api.validation so all field errors come back in
# one structured response.


class Credentials(BaseModel):
    username: Optional[str] = Field(None, description="Unique username")
    password: Optional[str] = Field(None, description="Plain password")


class RegisterRequest(Credentials):
    pass


class LoginRequest(Credentials):
    pass


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    message: str


class UserProfileOut(BaseModel):
    id: int
    username: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    description: Optional[str] = None
    avatar_url: Optional[str] = None


class AvatarUploadResponse(BaseModel):
    url: str
    message: str


class NoteCreate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    is_public: Optional[bool] = False


class NoteUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    is_public: Optional[bool] = None


class NoteOut(BaseModel):
    id: int
    title: str
    content: str
    is_public: bool
    user_id: int
    username: str
    created_at: datetime
    updated_at: datetime


class AttachmentOut(BaseModel):
    id: int
    note_id: int
    original_filename: str
    file_size: int
    content_type: Optional[str] = None
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FieldErrorOut(BaseModel):
    field: str
    message: str


class ErrorOut(BaseModel):
    """Body of every error response."""
    error: str
    message: str
    fields: Optional[List[FieldErrorOut]] = None

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from sqlalchemy.orm import Session

from notes_backend.api import config, core
from notes_backend.api.core import get_current_user, get_storage
from notes_backend.api.errors import install_error_handlers
from notes_backend.api.schemas import (
    AttachmentOut,
    AuthResponse,
    AvatarUploadResponse,
    ErrorOut,
    LoginRequest,
    NoteCreate,
    NoteOut,
    NoteUpdate,
    ProfileUpdate,
    RegisterRequest,
    UserProfileOut,
)
from notes_backend.api.storage import FileStorage, StorageCategory
from notes_database.db import get_db
from notes_database.models import User

config.configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Storage roots are created here; a failure aborts startup.
    get_storage()
    yield


ERROR_RESPONSES = {
    400: {"model": ErrorOut},
    401: {"model": ErrorOut},
    404: {"model": ErrorOut},
}

app = FastAPI(
    title="Notes Backend API",
    description="Backend API for user accounts, private and public notes, note attachments and avatars.",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Authentication", "description": "User registration and login"},
        {"name": "Users", "description": "Profiles and avatars"},
        {"name": "Notes", "description": "Create, update, view, delete, search notes"},
        {"name": "Attachments", "description": "Files attached to notes"},
        {"name": "Public", "description": "Unauthenticated read access"},
    ],
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)
install_error_handlers(app)


# Root Health Check
@app.get("/", summary="Health Check", tags=["General"])
def health_check():
    """Simple health check endpoint."""
    return {"message": "Healthy"}


#####################
# AUTH ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/api/auth/register", response_model=AuthResponse, responses=ERROR_RESPONSES,
          summary="Register a new user", tags=["Authentication"])
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user.
    Returns a JWT access token for the new account.
    """
    user = core.register_user(db, payload)
    return AuthResponse(
        access_token=core.create_access_token(user.username),
        username=user.username,
        message="User registered successfully",
    )


# PUBLIC_INTERFACE
@app.post("/api/auth/login", response_model=AuthResponse, responses=ERROR_RESPONSES,
          summary="Login and get JWT token", tags=["Authentication"])
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """Exchange username and password for a JWT access token."""
    user = core.login_user(db, payload)
    return AuthResponse(
        access_token=core.create_access_token(user.username),
        username=user.username,
        message="Login successful",
    )


#####################
# USER ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.get("/api/users/profile", response_model=UserProfileOut, summary="Get current user profile", tags=["Users"])
def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


# PUBLIC_INTERFACE
@app.put("/api/users/profile", response_model=UserProfileOut, responses=ERROR_RESPONSES,
         summary="Update current user profile", tags=["Users"])
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Update description and/or avatar URL of the authenticated user."""
    return core.update_profile(db, storage, current_user, payload)


# PUBLIC_INTERFACE
@app.get("/api/users", response_model=List[UserProfileOut], summary="List users", tags=["Users"])
def list_users(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return core.list_users(db)


# PUBLIC_INTERFACE
@app.get("/api/users/{user_id}", response_model=UserProfileOut, responses=ERROR_RESPONSES,
         summary="Get a user profile", tags=["Users"])
def get_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return core.get_user_or_404(db, user_id)


# PUBLIC_INTERFACE
@app.post("/api/upload/avatar", response_model=AvatarUploadResponse, responses=ERROR_RESPONSES,
          summary="Upload an avatar image", tags=["Users"])
def upload_avatar(
    file: UploadFile = File(...),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """
    Store an avatar image and return its public URL.
    The URL is attached to the profile with PUT /api/users/profile.
    """
    url = core.upload_avatar(storage, file.filename, file.content_type, file.file)
    return AvatarUploadResponse(url=url, message="File uploaded successfully")


# PUBLIC_INTERFACE
@app.get(config.AVATAR_URL_PREFIX + "{filename:path}", responses=ERROR_RESPONSES,
         summary="Serve an avatar image", tags=["Public"])
def serve_avatar(filename: str, storage: FileStorage = Depends(get_storage)):
    """Avatars are public; the name still goes through the path checks."""
    path = storage.load(StorageCategory.AVATAR, filename)
    return FileResponse(path)


#####################
# NOTES ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/api/notes", response_model=NoteOut, status_code=201, responses=ERROR_RESPONSES,
          summary="Create a new note", tags=["Notes"])
def create_note(payload: NoteCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """
    Create a new note for the authenticated user.
    Notes are private unless is_public is set.
    """
    note = core.create_note(db, current_user, payload)
    return core.note_out(note, current_user)


# PUBLIC_INTERFACE
@app.get("/api/notes", response_model=List[NoteOut], summary="List all user notes", tags=["Notes"])
def list_notes(
    q: Optional[str] = Query(None, description="Search term for note title or content"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get all notes for the authenticated user, most recently updated first.
    Supports filtering by search term (on title or content).
    """
    notes = core.list_notes(db, current_user, q=q, skip=skip, limit=limit)
    return [core.note_out(note, current_user) for note in notes]


# PUBLIC_INTERFACE
@app.get("/api/notes/{note_id}", response_model=NoteOut, responses=ERROR_RESPONSES,
         summary="Get a single note", tags=["Notes"])
def get_note(note_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    note = core.get_owned_note(db, current_user, note_id)
    return core.note_out(note, current_user)


# PUBLIC_INTERFACE
@app.put("/api/notes/{note_id}", response_model=NoteOut, responses=ERROR_RESPONSES,
         summary="Update a note", tags=["Notes"])
def update_note(
    note_id: int,
    payload: NoteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Partial update; omitted fields are left unchanged."""
    note = core.update_note(db, current_user, note_id, payload)
    return core.note_out(note, current_user)


# PUBLIC_INTERFACE
@app.delete("/api/notes/{note_id}", status_code=204, responses=ERROR_RESPONSES,
            summary="Delete a note", tags=["Notes"])
def delete_note(
    note_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Delete a note and all of its attachments."""
    core.delete_note(db, storage, current_user, note_id)
    return Response(status_code=204)


# PUBLIC_INTERFACE
@app.get("/api/public/users/{username}/notes", response_model=List[NoteOut], responses=ERROR_RESPONSES,
         summary="List a user's public notes", tags=["Public"])
def list_public_notes(username: str, db: Session = Depends(get_db)):
    owner, notes = core.list_public_notes(db, username)
    return [core.note_out(note, owner) for note in notes]


#####################
# ATTACHMENT ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.get("/api/notes/{note_id}/attachments", response_model=List[AttachmentOut], responses=ERROR_RESPONSES,
         summary="List note attachments", tags=["Attachments"])
def list_attachments(note_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return core.list_attachments(db, current_user, note_id)


# PUBLIC_INTERFACE
@app.post("/api/notes/{note_id}/attachments", response_model=AttachmentOut, responses=ERROR_RESPONSES,
          summary="Attach a file to a note", tags=["Attachments"])
def upload_attachment(
    note_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Upload a PDF, Word, text, CSV or image file to one of your notes."""
    return core.add_attachment(db, storage, current_user, note_id, file.filename, file.content_type, file.file)


# PUBLIC_INTERFACE
@app.get("/api/notes/{note_id}/attachments/{attachment_id}", responses=ERROR_RESPONSES,
         summary="Download an attachment", tags=["Attachments"])
def download_attachment(
    note_id: int,
    attachment_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    attachment = core.authorize_attachment_access(db, current_user, note_id, attachment_id)
    path = storage.load(StorageCategory.ATTACHMENT, attachment.filename)
    return FileResponse(
        path,
        media_type=attachment.content_type or "application/octet-stream",
        filename=attachment.original_filename,
    )


# PUBLIC_INTERFACE
@app.delete("/api/notes/{note_id}/attachments/{attachment_id}", status_code=204, responses=ERROR_RESPONSES,
            summary="Delete an attachment", tags=["Attachments"])
def delete_attachment(
    note_id: int,
    attachment_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    core.delete_attachment(db, storage, current_user, note_id, attachment_id)
    return Response(status_code=204)

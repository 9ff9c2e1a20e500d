import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///./notes.db"


# PUBLIC_INTERFACE
def get_database_url():
    """
    Retrieves the database URL from the environment variable DATABASE_URL.
    Falls back to a local SQLite file when it is not set.
    """
    load_dotenv()
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


# PUBLIC_INTERFACE
def make_engine(url: str):
    """Build an engine; SQLite connections are shared across the request threadpool."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, echo=False, connect_args=connect_args)


DATABASE_URL = get_database_url()

engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# PUBLIC_INTERFACE
def get_db():
    """
    Yields a SQLAlchemy session for use in dependency injection.
    Closes the session after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

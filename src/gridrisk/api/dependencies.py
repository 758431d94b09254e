"""
FastAPI Dependencies

Provides dependency injection for database sessions and pipeline
collaborators. Tests replace these through app.dependency_overrides.
"""
from typing import Generator, Optional

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk.db.session import SessionLocal, get_engine
from src.gridrisk.llm.client import TextGenerationClient
from src.gridrisk.notifications.dispatch import EmailSender
from src.gridrisk.storage.blob import LocalBlobStore


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields:
        SQLAlchemy database session
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_text_client() -> Optional[TextGenerationClient]:
    """
    Text generation client, or None when no API key is configured.
    """
    if not settings.llm_api_key:
        return None
    return TextGenerationClient()


def get_email_sender() -> EmailSender:
    return EmailSender()


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore()


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Requesting user, supplied by the fronting auth layer in X-User-Id.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id

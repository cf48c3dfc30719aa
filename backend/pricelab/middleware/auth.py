"""API key authentication.

Keys are SHA256-hashed and looked up directly by hash. API keys are
high-entropy random strings, so a fast deterministic hash is enough and
keeps the indexed lookup O(1) on every request.
"""
import hashlib
import hmac
from fastapi import HTTPException, Request, Security, Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session
from typing import Optional

from pricelab.database import get_db
from pricelab.models.user import User
from pricelab.config import get_settings

# API key headers
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)
admin_key_header = APIKeyHeader(name="x-admin-key", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key for storage using SHA256.

    Args:
        api_key: Plain text API key

    Returns:
        SHA256 hex digest of the API key
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def get_current_user(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to validate API key and get the calling user.

    The caller owns every experiment, listing and training job it creates.

    Usage:
        @router.get("/learning/experiments")
        def list_experiments(user: User = Depends(get_current_user)):
            ...

    Raises:
        HTTPException: 401 if API key is invalid or missing
    """
    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    user = db.query(User).filter(
        User.api_key_hash == hash_api_key(api_key)
    ).first()

    if not user:
        raise HTTPException(
            status_code=401,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    request.state.user_id = str(user.id)
    return user


def verify_admin_key(admin_key: Optional[str] = Security(admin_key_header)) -> None:
    """
    Guard for internal endpoints that act across all users.

    Raises:
        HTTPException: 503 if no admin key is configured, 401 if the
            header is missing or wrong
    """
    expected = get_settings().admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Internal endpoints are disabled")

    if not admin_key or not hmac.compare_digest(admin_key, expected):
        raise HTTPException(
            status_code=401,
            detail="Invalid admin key",
            headers={"WWW-Authenticate": "ApiKey"}
        )


def create_user_with_api_key(db: Session, api_key: str) -> User:
    """
    Helper to create a new user with an API key.

    Args:
        db: Database session
        api_key: Plain text API key (will be hashed with SHA256)

    Returns:
        Created User instance
    """
    user = User(api_key_hash=hash_api_key(api_key))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

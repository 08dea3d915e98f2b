from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta
from typing import Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from config.settings import Settings
from core.errors import UnauthorizedError
import logging
import secrets
import uuid

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# HTTP Bearer token scheme (cookie fallback for the browser dashboard)
security = HTTPBearer(auto_error=False)

# ============ Password Management ============

def hash_password(password: str) -> str:
    """
    Hash a plain text password.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain text password against a hashed password.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)

# ============ Participant Session Tokens ============

def generate_session_id() -> str:
    """Durable participant session token (64 hex chars)"""
    return secrets.token_hex(32)

# ============ JWT Token Management ============

def create_access_token(
    data: dict,
    settings: Settings,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary to encode in the token (typically {"sub": ..., "sid": ...})
        settings: Settings providing the key, algorithm and default lifetime
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_token(token: str, settings: Settings) -> dict:
    """
    Decode and validate a JWT token.

    Raises:
        UnauthorizedError: If token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Invalid admin token: {str(e)}")
        raise UnauthorizedError("admin_required")

# ============ Admin Login Sessions ============

class AdminSessionStore:
    """
    Server-held admin login sessions.

    A token is only honoured while its session id is in the store, so
    revoking the store logs every admin out regardless of token expiry.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._password_hash = hash_password(settings.ADMIN_PASSWORD)
        self._sessions: Dict[str, datetime] = {}

    def authenticate(self, username: str, password: str) -> bool:
        if not username or not password:
            return False
        if not secrets.compare_digest(username, self.settings.ADMIN_USERNAME):
            return False
        return verify_password(password, self._password_hash)

    def issue(self, username: str) -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = datetime.utcnow()
        logger.info(f"🔑 Admin session opened: {username}")
        return create_access_token({"sub": username, "sid": session_id}, self.settings)

    def validate(self, token: Optional[str]) -> dict:
        if not token:
            raise UnauthorizedError("admin_required")
        payload = decode_token(token, self.settings)
        if payload.get("sid") not in self._sessions:
            raise UnauthorizedError("admin_required")
        return payload

    def revoke(self, token: Optional[str]) -> bool:
        try:
            payload = decode_token(token, self.settings) if token else {}
        except UnauthorizedError:
            return False
        return self._sessions.pop(payload.get("sid"), None) is not None

    def revoke_all(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        logger.warning(f"🔒 Revoked {count} admin sessions")
        return count

    @property
    def active_count(self) -> int:
        return len(self._sessions)

# ============ Request Authentication ============

def admin_token_from_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    settings = request.app.state.context.settings
    return request.cookies.get(settings.ADMIN_COOKIE_NAME)

async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Dependency guarding admin routes.

    Usage in routes:
        @router.post("/test")
        async def create(admin: dict = Depends(require_admin)):
            ...
    """
    token = admin_token_from_request(request, credentials)
    return request.app.state.context.admin_sessions.validate(token)

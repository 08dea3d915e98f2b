from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    """
    Application settings and configuration management.
    Loads environment variables from .env file.
    """

    # ============ API Configuration ============
    API_TITLE: str = "Word Association Quiz"
    API_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ============ Server Configuration ============
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # ============ Database Configuration ============
    DATABASE_URL: str = "sqlite:///./data/database.sqlite"
    """SQLAlchemy connection string (SQLite file by default)"""

    READ_RETRY_ATTEMPTS: int = 3
    """How many times an idempotent read is attempted before giving up"""

    READ_RETRY_DELAY: float = 0.05
    """Base delay in seconds between read retries (grows linearly)"""

    # ============ Admin Authentication Configuration ============
    SECRET_KEY: str = "default-secret-change-this"
    """Secret key for JWT token signing - change in production"""

    ALGORITHM: str = "HS256"
    """JWT algorithm for token encoding"""

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    """Admin token expiration time in minutes (24 hours)"""

    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"
    """Plain admin password; hashed once at startup"""

    # ============ Quiz Configuration ============
    MAX_WORDS: int = 15
    """Maximum number of words a participant may submit per test"""

    LANGUAGE: str = "en"
    """Language of user-facing messages ("en" or "tr")"""

    SESSION_COOKIE_NAME: str = "quiz_session_id"
    ADMIN_COOKIE_NAME: str = "admin_token"
    SESSION_COOKIE_SECURE: bool = False

    # ============ CORS Configuration ============
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",  # Same origin
        "http://localhost:5173",  # Vite dev server
    ]
    """Allowed origins for CORS requests"""

    class Config:
        env_file = ".env"
        """Load environment variables from .env file"""

        env_file_encoding = "utf-8"
        case_sensitive = False

# Create global settings instance
settings = Settings()

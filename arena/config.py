import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Engine configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Logging settings
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Store settings
    STORE_RETRY_ATTEMPTS = int(os.getenv('STORE_RETRY_ATTEMPTS', 3))  # Read paths only
    SQLITE_BUSY_TIMEOUT_MS = int(os.getenv('SQLITE_BUSY_TIMEOUT_MS', 5000))

    # Proficiency settings
    DEFAULT_PROFICIENCY_FALLBACK = int(os.getenv('DEFAULT_PROFICIENCY_FALLBACK', 0))

    @classmethod
    def get_async_database_url(cls, database_url: str = None) -> str:
        """Get the database URL rewritten for the async driver"""
        url = database_url or cls.DATABASE_URL
        if url.startswith('sqlite:///'):
            url = url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return url

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.STORE_RETRY_ATTEMPTS < 1:
            raise ValueError("STORE_RETRY_ATTEMPTS must be at least 1")
        if cls.SQLITE_BUSY_TIMEOUT_MS < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if not 0 <= cls.DEFAULT_PROFICIENCY_FALLBACK <= 100:
            raise ValueError("DEFAULT_PROFICIENCY_FALLBACK must be between 0 and 100")

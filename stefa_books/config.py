"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Cache and catalog configuration, read from the environment."""

    # Catalog service
    CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "http://localhost:3000")
    CATALOG_PATH = os.getenv("CATALOG_PATH", "/catalog")
    FINGERPRINT_PATH = os.getenv("FINGERPRINT_PATH", "/catalog/fingerprint")
    CATALOG_PAGE_SIZE = int(os.getenv("CATALOG_PAGE_SIZE", "10000"))
    CATALOG_MAX_PAGES = int(os.getenv("CATALOG_MAX_PAGES", "50"))

    # Local mirror
    CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "books-cache")
    CACHE_DIR = os.getenv("CACHE_DIR", ".cache")
    CACHE_BACKEND = os.getenv("CACHE_BACKEND", "file")

    # Database (postgres backend)
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "stefa_books")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))

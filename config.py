import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    # Hosting platforms hand the port over in PORT
    api_port: int = int(os.getenv("PORT") or os.getenv("API_PORT", "3000"))
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    cors_origins: List[str] = field(default_factory=lambda: _split_csv(os.getenv("CORS_ORIGINS", "*")))

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    database_pool_size: int = int(os.getenv("DATABASE_POOL_SIZE", "10"))

    # Frontend
    static_dir: str = os.getenv("STATIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "static"))

    # Listing defaults
    lendings_limit: int = int(os.getenv("LENDINGS_LIMIT", "10"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()

"""
Application configuration using Pydantic Settings
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode
from typing import Annotated, List, Optional


DEFAULT_SITES = [
    "AVB", "AW", "DQ", "FMB", "HD", "KONE", "KOUMAC", "LD",
    "LE_BROUSSARD", "MEARE", "PAITA_BRICOLAGE", "QC", "SITEC", "VKP",
]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database (DATABASE_URL_DEV is used when DATABASE_URL is unset)
    DATABASE_URL: Optional[str] = None
    DATABASE_URL_DEV: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Source layout
    ARCHIVE_ROOT: str = "./_dbf"
    BINDINGS_DIR: str = "./bindings"
    SITES: Annotated[List[str], NoDecode] = DEFAULT_SITES  # comma-separated in the environment
    ARCHIVE_ENCODING: str = "latin-1"
    ARCHIVE_ENCODING_ERRORS: str = "replace"

    # Load behaviour
    CHUNK_SIZE: int = 1000
    CHUNK_FAILURE_POLICY: str = "record"  # record, split, abandon
    MAX_CONCURRENT_LOADS: int = 1
    MAX_RECORDED_ERRORS: int = 100

    # Diagnostics
    ERROR_LOG_PATH: str = "logs/migration_errors.log"
    PROGRESS_ENABLED: Optional[bool] = None  # None: only when attached to a terminal
    RECORD_RUN_HISTORY: bool = True

    class Config:
        env_file = (".env", "config/config.env")
        case_sensitive = True
        extra = "ignore"

    @field_validator("SITES", mode="before")
    @classmethod
    def split_sites(cls, v):
        """Accept a comma-separated string as well as a list"""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @property
    def database_url(self) -> Optional[str]:
        """Connection string, falling back to the development one"""
        return self.DATABASE_URL or self.DATABASE_URL_DEV


settings = Settings()

"""
Suite Configuration using Pydantic Settings

Loads configuration from environment variables with sensible defaults.
"""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DSN = (
    "databend://root:@localhost:8000/default"
    "?sslmode=disable&enable_experimental_merge_into=1"
)

PACKAGE_SQL_DIR = Path(__file__).parent / "sql"


class Settings(BaseSettings):
    """
    Suite settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # Store Connection Settings
    # ========================================================================
    # Accept the driver's conventional variable as well as our own prefix.
    DSN: str = Field(
        DEFAULT_DSN,
        validation_alias=AliasChoices("STRESSBENCH_DSN", "DATABEND_DSN"),
    )

    # ========================================================================
    # Setup Script Settings
    # ========================================================================
    SQL_DIR: Path = Field(
        PACKAGE_SQL_DIR,
        validation_alias=AliasChoices("STRESSBENCH_SQL_DIR", "SQL_DIR"),
    )

    @field_validator("SQL_DIR", mode="before")
    @classmethod
    def _expand_sql_dir(cls, v):
        if v in (None, ""):
            return PACKAGE_SQL_DIR
        return Path(str(v)).expanduser()

    # ========================================================================
    # Worker Settings
    # ========================================================================
    # Unbounded workers log a progress line every N executed iterations.
    # 0 disables the periodic line (failures are still logged).
    MAINTENANCE_PROGRESS_EVERY: int = 100

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Create global settings instance
settings = Settings()

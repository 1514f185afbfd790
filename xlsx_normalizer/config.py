"""Service configuration.

Settings are read from environment variables prefixed with XLSX_NORMALIZER_
or from a .env file in the working directory.

Environment Variables:
    XLSX_NORMALIZER_MAX_PAYLOAD_MB: Maximum decoded workbook size in MB (default: 20)
    XLSX_NORMALIZER_FORCE_QUOTES: Quote every field unless a request says otherwise (default: false)
    XLSX_NORMALIZER_HEADER_SCAN_LIMIT: Rows scanned for the header row (default: 50)
    XLSX_NORMALIZER_HEADER_MARKERS: JSON list of header marker tokens (default: ["date"])
    XLSX_NORMALIZER_BOUNDS_LOOKAHEAD: Rows scanned when the header row is blank (default: 20)
    XLSX_NORMALIZER_PREVIEW_ROWS: Rows shown per sheet by /sheets (default: 5)
    XLSX_NORMALIZER_EXTERNAL_ENGINE_ENABLED: Allow the LibreOffice fallback (default: false)
    XLSX_NORMALIZER_EXTERNAL_ENGINE_BINARY: LibreOffice executable (default: soffice)
    XLSX_NORMALIZER_EXTERNAL_ENGINE_TIMEOUT: Seconds before the engine is abandoned (default: 60)
    XLSX_NORMALIZER_LOG_LEVEL: Logging level (default: INFO)
"""

import logging
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import rules


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="XLSX_NORMALIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_payload_mb: int = Field(default=20, ge=1)
    force_quotes: bool = False

    header_scan_limit: int = Field(default=rules.HEADER_SCAN_LIMIT, ge=1)
    header_markers: List[str] = Field(default_factory=lambda: list(rules.HEADER_MARKERS))
    bounds_lookahead: int = Field(default=rules.BOUNDS_LOOKAHEAD, ge=1)
    preview_rows: int = Field(default=rules.PREVIEW_ROWS, ge=0)

    external_engine_enabled: bool = False
    external_engine_binary: str = "soffice"
    external_engine_timeout: float = Field(default=60.0, gt=0)

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def max_payload_bytes(self) -> int:
        return self.max_payload_mb * 1024 * 1024

    @property
    def log_level_int(self) -> int:
        level: int = getattr(logging, self.log_level)
        return level


settings = Settings()

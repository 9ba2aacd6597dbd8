"""Configuration management for the link → attachment pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"
RELAY_PATH = "/api/proxy"


class RelaySettings(BaseSettings):
    """Limits for the relay endpoint; needs no host credentials."""

    max_attachment_bytes: int = Field(MAX_ATTACHMENT_BYTES, alias="MAX_ATTACHMENT_BYTES")
    fetch_timeout_seconds: float = Field(30.0, alias="FETCH_TIMEOUT_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    host_mode: Literal["bitable", "sqlite"] = Field("bitable", alias="HOST_MODE")

    bitable_base_url: HttpUrl = Field("https://open.feishu.cn", alias="BITABLE_BASE_URL")
    bitable_app_id: str | None = Field(None, alias="BITABLE_APP_ID")
    bitable_app_secret: str | None = Field(None, alias="BITABLE_APP_SECRET")
    bitable_app_token: str | None = Field(None, alias="BITABLE_APP_TOKEN")
    bitable_table_id: str | None = Field(None, alias="BITABLE_TABLE_ID")
    bitable_page_size: int = Field(500, alias="BITABLE_PAGE_SIZE")

    local_db_path: Path | None = Field(None, alias="LOCAL_DB_PATH")

    relay_base_url: HttpUrl | None = Field(None, alias="RELAY_BASE_URL")
    prefer_relay: bool = Field(True, alias="PREFER_RELAY")
    max_attachment_bytes: int = Field(MAX_ATTACHMENT_BYTES, alias="MAX_ATTACHMENT_BYTES")
    fetch_timeout_seconds: float = Field(30.0, alias="FETCH_TIMEOUT_SECONDS")
    upload_timeout_seconds: float = Field(60.0, alias="UPLOAD_TIMEOUT_SECONDS")
    verify_delay_seconds: float = Field(1.0, alias="VERIFY_DELAY_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _validate_host(self):
        if self.host_mode == "bitable":
            missing = [
                name
                for name, value in (
                    ("BITABLE_APP_ID", self.bitable_app_id),
                    ("BITABLE_APP_SECRET", self.bitable_app_secret),
                    ("BITABLE_APP_TOKEN", self.bitable_app_token),
                    ("BITABLE_TABLE_ID", self.bitable_table_id),
                )
                if not value
            ]
            if missing:
                raise ValueError(f"{', '.join(missing)} required for bitable host mode.")
        elif self.local_db_path is None:
            raise ValueError("LOCAL_DB_PATH is required for sqlite host mode.")
        if self.max_attachment_bytes <= 0:
            raise ValueError("MAX_ATTACHMENT_BYTES must be positive.")
        return self

    @field_validator(
        "bitable_app_id",
        "bitable_app_secret",
        "bitable_app_token",
        "bitable_table_id",
        "local_db_path",
        "relay_base_url",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @property
    def relay_url(self) -> str | None:
        """Absolute relay endpoint, or None when no relay is configured."""
        if self.relay_base_url is None:
            return None
        return f"{str(self.relay_base_url).rstrip('/')}{RELAY_PATH}"

    @property
    def bitable_api_root(self) -> str:
        return f"{str(self.bitable_base_url).rstrip('/')}/open-apis"

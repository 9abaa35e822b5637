from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8')

    app_name: str = 'LAN Files'
    app_host: str = '0.0.0.0'
    app_port: int = Field(default=8080, ge=1, le=65535)
    served_dir: str = '.'
    upload_policy: Literal['verbatim', 'timestamped'] = 'verbatim'
    asset_bucket: str = 'assert'
    max_upload_bytes: int = Field(default=32 * 1024 * 1024, ge=0)
    log_level: str = 'info'
    log_file: str = ''
    cors_origins: str = ''


settings = Settings()

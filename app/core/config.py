from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
import os
import json


class Settings(BaseSettings):
    """应用配置"""

    # API 配置
    API_TITLE: str = "Plant Catalog API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Categories & plants catalog API"

    # 数据库配置（默认本地 SQLite，线上通过环境变量覆盖）
    DATABASE_URL: str = "sqlite:///./plant_catalog.db"
    AUTO_CREATE_TABLES: bool = True

    # 日志
    LOG_LEVEL: str = "INFO"

    # 图片访问：imageUrl = BASE_URL + STATIC_PATH + "/" + image
    BASE_URL: str = "http://localhost:8000"
    STATIC_PATH: str = "/uploads"
    UPLOAD_DIR: str = "uploads"
    MAX_IMAGE_SIZE: int = 5 * 1024 * 1024  # 5MB

    # 列表分页
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # CORS 配置
    # 支持通过环境变量 CORS_ORIGINS 覆盖：
    # - JSON 数组：["https://a.com","https://b.com"]
    # - 逗号分隔：https://a.com,https://b.com
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    CORS_ALLOW_ORIGIN_REGEX: Optional[str] = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None:
            return v
        if isinstance(v, str):
            raw = v.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except ValueError:
                    pass
            return [item.strip() for item in raw.split(",") if item.strip()]
        return v

    @field_validator("CORS_ALLOW_ORIGIN_REGEX", mode="before")
    @classmethod
    def _normalize_cors_regex(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("STATIC_PATH", mode="before")
    @classmethod
    def _normalize_static_path(cls, v):
        if isinstance(v, str):
            return "/" + v.strip().strip("/")
        return v

    @staticmethod
    def _default_env_file() -> str:
        env_file = os.getenv("ENV_FILE")
        if env_file:
            return env_file
        return ".env"

    model_config = SettingsConfigDict(env_file=_default_env_file.__func__(), extra="ignore")


settings = Settings()

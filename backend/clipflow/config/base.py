"""
Base configuration settings
"""

import os
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

MB = 1024 * 1024


class Settings(BaseSettings):
    """Base settings configuration"""

    # Application settings
    APP_NAME: str = "Clipflow Media Pipeline"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Redis settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_DB: int = 0

    # AWS S3 settings
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET: str = "clipflow-uploads"
    AWS_ENDPOINT_URL: Optional[str] = None
    PRESIGNED_URL_EXPIRES: int = 3600  # 1 hour

    # Chunked upload settings
    CHUNKED_UPLOAD_THRESHOLD: int = 100 * MB
    MIN_CHUNK_SIZE: int = 5 * MB  # S3 part-size floor
    MAX_CHUNK_SIZE: int = 100 * MB
    TARGET_CHUNK_COUNT: int = 100

    # Upload session settings
    UPLOAD_SESSION_TTL: int = 86400  # 24 hours
    UPLOAD_SESSION_RETENTION_DAYS: int = 30
    # memory keeps everything in the API process and runs clip jobs there, without the worker
    SESSION_STORE: str = "redis"  # memory | redis

    # Worker settings (for Celery/Redis)
    BROKER_URL: str = "redis://localhost:6379/0"
    RESULT_BACKEND: str = "redis://localhost:6379/0"
    SWEEP_INTERVAL: int = 900  # 15 minutes
    RECONCILE_INTERVAL: int = 3600

    # Encoder settings
    FFMPEG_PATH: str = "ffmpeg"
    ENCODER_TIMEOUT: int = 1500  # 25 minutes
    ENCODER_MAX_RETRIES: int = 2
    ENCODER_RETRY_BASE_DELAY: float = 2.0
    ENCODER_RETRY_MAX_DELAY: float = 30.0

    # Clip settings
    CLIP_WORK_DIR: str = "./uploads/clips"

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "clipflow.log"

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }


def load_settings(environment: Optional[str] = None) -> Settings:
    """Build the settings for APP_ENV (development | production | anything else)"""
    environment = (environment or os.getenv("APP_ENV", "")).lower()

    if environment == "development":
        from clipflow.config.development import DevelopmentSettings
        return DevelopmentSettings()
    if environment == "production":
        from clipflow.config.production import ProductionSettings
        return ProductionSettings()
    return Settings()


# Create settings instance
settings = load_settings()

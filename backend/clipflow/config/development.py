"""
Development environment configuration
"""

from clipflow.config.base import Settings


class DevelopmentSettings(Settings):
    """Development-specific settings"""

    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

    S3_BUCKET: str = "clipflow-dev-uploads"
    SESSION_STORE: str = "memory"

    # Short-lived sessions make the expiry sweep easy to observe locally
    UPLOAD_SESSION_TTL: int = 3600
    UPLOAD_SESSION_RETENTION_DAYS: int = 1

    # Relaxed encoder limits for slow laptops
    ENCODER_TIMEOUT: int = 3600

    CLIP_WORK_DIR: str = "./uploads/clips"

    model_config = {
        "env_file": ".env.development",
        "case_sensitive": True,
        "extra": "ignore"
    }



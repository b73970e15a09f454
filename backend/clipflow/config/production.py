"""
Production environment configuration
"""

from clipflow.config.base import Settings


class ProductionSettings(Settings):
    """Production-specific settings"""

    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"

    S3_BUCKET: str = "clipflow-prod-uploads"
    SESSION_STORE: str = "redis"

    # Strict encoder limits for shared workers
    ENCODER_TIMEOUT: int = 1500
    ENCODER_MAX_RETRIES: int = 2

    SWEEP_INTERVAL: int = 600

    model_config = {
        "env_file": ".env.production",
        "case_sensitive": True,
        "extra": "ignore"
    }



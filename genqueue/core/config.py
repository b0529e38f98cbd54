from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    jobs_dir: str = "./jobs"
    uploads_dir: str = "./uploads"

    job_scan_interval_ms: int = Field(default=2000, ge=1)
    job_concurrency: int = Field(default=1, ge=1)
    file_concurrency: int = Field(default=1, ge=1)
    post_success_delay_ms: int = Field(default=600, ge=0)

    max_retries: int = Field(default=5, ge=1)
    retry_base_delay_ms: int = Field(default=500, ge=0)
    retry_max_delay_ms: int = Field(default=15000, ge=0)

    cleanup_interval_ms: int = Field(default=10 * 60 * 1000, ge=0)
    retention_ms: int = Field(default=24 * 60 * 60 * 1000, ge=0)

    default_image_size: int = Field(default=1024, ge=1)

    generation_provider: str = "replicate"

    # Replicate model references, <owner>/<name>
    spark_default_model: str = "black-forest-labs/flux-schnell"
    spark_fallback_model: str = "black-forest-labs/flux-dev"
    sogni_default_model: str = "stability-ai/sdxl"
    sogni_fallback_model: str = "black-forest-labs/flux-schnell"

    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = [".env", ".env.development"]
        case_sensitive = False
        extra = "ignore"


settings = Settings()

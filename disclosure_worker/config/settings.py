from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "disclosures"
    db_username: str = "disclosures"
    db_password: str = "secret"

    max_job_attempts: int = 3
    job_poll_interval_seconds: int = 5

    pdf_engine: str = "pymupdf"
    files_root: str = "/app/files"

    page_concurrency: int = 50

    extraction_provider: str = "openrouter"
    extraction_model_identity: str = "gemini-3-flash"
    extraction_model_name: str = "google/gemini-3-flash-preview"
    extraction_timeout_seconds: int = 120
    extraction_openai_api_key: str = ""
    extraction_openrouter_api_key: str = ""
    extraction_openai_compatible_api_key: str = ""
    extraction_openai_compatible_base_url: str = ""

    reextraction_model_family: str = "gemini-3"

    summary_extraction_enabled: bool = True
    summary_max_pages: int = 8

    gemini_api_key: str = ""
    batch_model: str = "gemini-3-flash-preview"
    batch_poll_interval_seconds: int = 30
    batch_pages_per_request: int = 1
    batch_timeout_seconds: int = 60

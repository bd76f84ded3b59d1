"""Configuration settings for the business directory enrichment service."""

from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings

from bizdir.errors import ConfigurationError, MissingConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = base_dir / "data"
    db_path: Path = data_dir / "bizdir.db"

    # Classification Source
    classification_api_url: str = ""
    classification_api_token: str = ""
    enrich_endpoint: str = "/api/enrich"
    classify_endpoint: str = "/api/classify"
    job_status_endpoint: str = "/api/jobs/{job_id}"

    # HTTP Client Settings
    user_agent: str = "BizdirEnrichment/1.0 (+contact@example.com)"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0

    # Polling
    poll_interval: float = 2.0  # seconds between status polls
    poll_timeout: float = 300.0  # overall budget per job

    # Resolution
    min_confidence: float = 0.7
    conflict_retries: int = 3

    # Traceability
    search_session_reuse_window: float = 60.0  # seconds

    # Options forwarded with every website enrichment request
    max_html_length: int = 50000
    include_technology_extraction: bool = True

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    def require_classification_source(self) -> None:
        """Fail fast when the Classification Source endpoint is unusable."""
        if not self.classification_api_url.strip():
            raise MissingConfigurationError(
                "CLASSIFICATION_API_URL is not configured"
            )
        parsed = urlparse(self.classification_api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"CLASSIFICATION_API_URL is not an http(s) URL: {self.classification_api_url!r}"
            )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure data directory exists
settings.data_dir.mkdir(parents=True, exist_ok=True)

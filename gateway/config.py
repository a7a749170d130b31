import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_prefix='APP_', case_sensitive=False)

    # Public API settings
    api_prefix: str = "/v1"
    api_keys: str = ""  # comma-separated allow-list; empty rejects every request

    # Model/backend settings
    model_id: str = "gemini-1.5-pro"
    backend: str = "echo"  # echo | vertex

    # Vertex AI settings (if backend=vertex)
    gcp_project_id: Optional[str] = None
    gcp_location: str = "us-central1"

    log_level: str = "INFO"

    def authorized_keys(self) -> frozenset[str]:
        return frozenset(k.strip() for k in self.api_keys.split(",") if k.strip())


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

#deployment_engine\config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploySettings(BaseSettings):
    """Deployment engine configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # AWS
    aws_profile: Optional[str] = None
    default_region: str = "us-west-2"

    # Workspace layout
    workspace: str = "."
    overrides_dir: Optional[str] = None
    custom_resources_dir: str = "custom-resources"

    # Uploads / images
    upload_workers: int = 3
    builder_label: str = "deployment-engine"

    # Backend: "aws" or "memory"
    backend: str = "aws"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    log_level: str = "INFO"

    @property
    def builder_labels(self) -> dict:
        return {"com.deployment-engine.builder": self.builder_label}


settings = DeploySettings()

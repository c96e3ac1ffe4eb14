import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import (
    BaseSettings,
    GoogleSecretManagerSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

env_name = os.getenv("ENV", "dev")
load_dotenv("config/.env", override=True)
load_dotenv(f"config/.env.{env_name}", override=True)


class Settings(BaseSettings):
    env: str = "dev"
    k_revision: str = "1.0.0"
    port: int = 8080

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "richlink"
    mongodb_server_selection_timeout_ms: int = 5000

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    url_cache_enabled: bool = True

    # Comma-separated list of accepted x-api-key values
    api_secret_key: str = ""

    github_api_base_url: str = "https://api.github.com"
    github_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("github_token", "github_access_token")
    )
    github_rate_limit_check_interval_seconds: int = 300
    github_timeout_seconds: float = 10.0

    devto_api_base_url: str = "https://dev.to/api"
    blog_timeout_seconds: float = 10.0

    repo_preview_ttl_hours: int = 24
    webpage_preview_ttl_days: int = 7
    webpage_timeout_seconds: float = 10.0
    webpage_max_content_bytes: int = 2 * 1024 * 1024

    user_agent: str = "RichLink/1.0"
    bot_user_agent: str = "RichLink-Bot/1.0 (compatible; link preview bot)"

    batch_size: int = 5
    batch_delay_seconds: float = 1.0
    batch_max_links: int = 20

    preview_sweep_enabled: bool = False
    preview_sweep_interval_seconds: int = 15 * 60
    preview_sweep_limit: int = 50

    log_level: str = "INFO"
    gcp_project_id: Optional[str] = None

    model_config = SettingsConfigDict(
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        project_id = os.getenv("GCP_PROJECT_ID")
        if not project_id:
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                file_secret_settings,
            )

        gcp_settings = GoogleSecretManagerSettingsSource(
            settings_cls,
            project_id=project_id,
        )
        # Priority order: init -> env -> dotenv -> gcp_secrets -> file_secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            gcp_settings,
            file_secret_settings,
        )


settings = Settings()

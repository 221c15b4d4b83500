from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr, field_validator
from functools import lru_cache
from typing import Dict, Optional
import json

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from domain.models import ProcessorConfig
from shared_utils.constants import Defaults, Environment, LogScope
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)

# Secret JSON key -> Settings field
_SECRET_KEYS: Dict[str, str] = {
    "GOOGLE_SERVICE_ACCOUNT_JSON": "google_service_account_json",
    "SLACK_BOT_TOKEN": "slack_bot_token",
    "NOTION_API_KEY": "notion_api_key",
}

_ENV_ALIASES = {
    Environment.DEV.value: Environment.DEVELOPMENT.value,
    Environment.STAGE.value: Environment.STAGING.value,
    Environment.PROD.value: Environment.PRODUCTION.value,
}


def get_secrets_from_aws(secret_name: str, region: str = Defaults.AWS_REGION) -> Dict[str, str]:
    """Fetch the application secret bundle from AWS Secrets Manager.

    Args:
        secret_name: Name of the secret in Secrets Manager
        region: AWS region

    Returns:
        Parsed secret JSON, or an empty dict if the fetch fails
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=secret_name)
        if "SecretString" in response:
            return json.loads(response["SecretString"])
        return {}
    except (BotoCoreError, ClientError, json.JSONDecodeError) as e:
        logger.warning("secrets_fetch_failed", secret_name=secret_name, error=str(e))
        return {}


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2) .env file > 3) Class defaults

    Every field has a default so the API and worker import cleanly; features
    stay disabled until their flag (and credentials) are provided.
    """
    # Application metadata
    app_name: str = "Meeting Transcript Processor"
    app_version: str = "1.0.0"
    app_description: str = "Calendar-aware transcript processing with Slack/Notion identity mapping"

    environment: str = "development"
    aws_region: str = Defaults.AWS_REGION
    log_level: str = Defaults.LOG_LEVEL

    # Feature flags
    google_calendar_enabled: bool = False
    user_mapping_enabled: bool = False
    parallel_processing: bool = True
    max_workers: int = Defaults.MAX_WORKERS
    metrics_enabled: bool = False

    # Credentials (plain env vars or pulled from Secrets Manager)
    google_service_account_json: Optional[SecretStr] = None
    slack_bot_token: Optional[SecretStr] = None
    notion_api_key: Optional[SecretStr] = None
    app_secrets_name: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized (short aliases accepted)."""
        value = _ENV_ALIASES.get(v.lower(), v.lower())
        valid_envs = {e.value for e in (Environment.DEVELOPMENT, Environment.STAGING, Environment.PRODUCTION)}
        if value not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}, got {v}")
        return value

    @field_validator('max_workers')
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return v.upper()

    def apply_secrets(self, secrets: Dict[str, str]) -> None:
        """Fill credentials that are not already set from a secret bundle."""
        for secret_key, field_name in _SECRET_KEYS.items():
            value = secrets.get(secret_key)
            if value and getattr(self, field_name) is None:
                setattr(self, field_name, SecretStr(value))

    def to_processor_config(self) -> ProcessorConfig:
        return ProcessorConfig(
            google_calendar_enabled=self.google_calendar_enabled,
            user_mapping_enabled=self.user_mapping_enabled,
            parallel_processing=self.parallel_processing,
            max_workers=self.max_workers,
            google_service_account_json=self.google_service_account_json,
            slack_bot_token=self.slack_bot_token,
            notion_api_key=self.notion_api_key,
        )


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    If APP_SECRETS_NAME is provided, missing tokens are fetched from AWS
    Secrets Manager.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If settings are invalid
    """
    settings = Settings()

    if settings.app_secrets_name:
        secrets = get_secrets_from_aws(settings.app_secrets_name, settings.aws_region)
        if secrets:
            settings.apply_secrets(secrets)
            logger.debug("fetched_secrets_from_secrets_manager")

    # Sensitive values are never logged
    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        google_calendar_enabled=settings.google_calendar_enabled,
        user_mapping_enabled=settings.user_mapping_enabled,
        parallel_processing=settings.parallel_processing,
        max_workers=settings.max_workers,
    )

    return settings

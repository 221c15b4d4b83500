"""
Constants management.
Centralized configuration for API endpoints, defaults and magic values.
"""

from enum import Enum
from typing import Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    # Short aliases (config accepts dev|stage|prod)
    DEV = "dev"
    STAGE = "stage"
    PROD = "prod"


# External API settings
class ExternalAPI:
    """Base URLs and versions of the third-party services we talk to."""
    SLACK_BASE_URL: Final[str] = "https://slack.com/api"
    NOTION_BASE_URL: Final[str] = "https://api.notion.com/v1"
    NOTION_VERSION: Final[str] = "2022-06-28"
    GOOGLE_DRIVE_SCOPE: Final[str] = "https://www.googleapis.com/auth/drive.readonly"
    GOOGLE_CALENDAR_SCOPE: Final[str] = "https://www.googleapis.com/auth/calendar.readonly"
    HTTP_READ_TIMEOUT: Final[float] = 30.0
    HTTP_CONNECT_TIMEOUT: Final[float] = 10.0


# Default values
class Defaults:
    """Defaults shared by the processor and its collaborators."""
    MAX_WORKERS: Final[int] = 10
    SHUTDOWN_TIMEOUT: Final[float] = 10.0
    MAX_RETRIES: Final[int] = 3
    LOG_LEVEL: Final[str] = "INFO"
    AWS_REGION: Final[str] = "ap-northeast-1"
    SLACK_RATE_LIMIT_PER_MINUTE: Final[int] = 50
    NOTION_CACHE_TTL_SECONDS: Final[int] = 600
    NOTION_PAGE_SIZE: Final[int] = 100
    CALENDAR_PAGE_SIZE: Final[int] = 250
    CALENDAR_SEARCH_WINDOW_HOURS: Final[int] = 24
    RECURRING_SEARCH_WINDOW_HOURS: Final[int] = 48
    # Recordings usually land in Drive within an hour of the meeting ending
    RECORDING_GRACE_HOURS: Final[int] = 1


# Metrics
class MetricsConfig:
    """CloudWatch custom metric settings."""
    NAMESPACE: Final[str] = "MinutesAnalyzer"
    MAX_BATCH_SIZE: Final[int] = 20  # CloudWatch limit per PutMetricData call


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    PROCESSOR = "processor"
    CALENDAR = "calendar"
    DIRECTORY = "directory"
    METRICS = "metrics"
    WORKER = "worker"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    PROCESS = "/api/v1/transcripts/process"
    BATCH = "/api/v1/transcripts/batch"
    STATISTICS = "/api/v1/statistics"
    ASSIGN_ACTIONS = "/api/v1/actions/assign"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    PROCESSOR_CLOSED = "PROCESSOR_CLOSED"

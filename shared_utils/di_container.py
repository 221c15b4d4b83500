"""
Dependency injection container for managing application dependencies.
Centralizes adapter creation and the TranscriptProcessor lifecycle.
"""

from typing import Optional

from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConfigurationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CONFIG)


class DIContainer:
    """Singleton dependency injection container."""

    _instance: Optional['DIContainer'] = None
    _metrics_publisher: Optional[object] = None
    _transcript_processor: Optional[object] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Shut down the processor (if any) and drop every singleton."""
        if self._transcript_processor is not None:
            self._transcript_processor.cleanup()
        self._metrics_publisher = None
        self._transcript_processor = None

    def get_metrics_publisher(self):
        """Get or create CloudWatchMetricsAdapter (None when metrics are disabled)."""
        settings = get_settings()
        if not settings.metrics_enabled:
            return None
        if self._metrics_publisher is None:
            from adapters.cloudwatch_metrics import CloudWatchMetricsAdapter

            self._metrics_publisher = CloudWatchMetricsAdapter(
                environment=settings.environment,
                region=settings.aws_region,
            )
            logger.info("Initialized CloudWatchMetricsAdapter")
        return self._metrics_publisher

    def get_transcript_processor(self):
        """Get or create TranscriptProcessor (lazy singleton).

        The processor builds the Google / Slack / Notion adapters for the
        features enabled in settings.

        Raises:
            ConfigurationError: If an enabled feature lacks its credentials.
            RuntimeError: If an adapter fails to initialise for another reason.
        """
        if self._transcript_processor is None:
            from services.transcript_processor import TranscriptProcessor

            settings = get_settings()
            try:
                self._transcript_processor = TranscriptProcessor(
                    settings.to_processor_config(),
                    metrics_publisher=self.get_metrics_publisher(),
                )
            except ConfigurationError as e:
                logger.error("processor_misconfigured", error=e.message)
                raise
            except Exception as e:
                logger.error("processor_initialization_failed", error=str(e))
                raise RuntimeError(f"Transcript processor initialization failed: {e}") from e
            logger.info("Initialized TranscriptProcessor")
        return self._transcript_processor


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container

"""
Worker entrypoint for batch transcript processing (ECS RunTask / cron).

Environment:
    FILE_IDS         — comma-separated Google Drive file ids (required)
    PUBLISH_METRICS  — "false" to skip sending run statistics (default true)

The worker:
    1. Builds the TranscriptProcessor from settings via the DI container.
    2. Runs batch_process_transcripts() over the requested files.
    3. Publishes run statistics and shuts the processor down.
    4. Exits 0 when every file completed, 1 otherwise.

All logging is JSON (structlog) and ships to CloudWatch via the awslogs driver.
"""

from __future__ import annotations

import os
import sys
from typing import List

from domain.models import ProcessingStatus
from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.di_container import get_di_container
from shared_utils.error_handler import AppException, ProcessingError
from shared_utils.logging_utils import get_scoped_logger, setup_logging
from shared_utils.validation import InputValidator

logger = get_scoped_logger(LogScope.WORKER)

_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_file_ids(raw: str) -> List[str]:
    """Split a comma-separated FILE_IDS value, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def main() -> int:
    """Worker main — parse env vars, build deps, run the batch."""
    setup_logging(get_settings().log_level)

    file_ids = parse_file_ids(os.environ.get("FILE_IDS", ""))
    publish = os.environ.get("PUBLISH_METRICS", "true").strip().lower() not in _FALSE_VALUES

    if not file_ids:
        logger.error("worker_missing_env", variable="FILE_IDS")
        print("ERROR: FILE_IDS env var is required", file=sys.stderr)
        return 1

    logger.info("worker_started", files=len(file_ids), publish_metrics=publish)

    processor = None
    try:
        InputValidator.validate_file_ids(file_ids)

        processor = get_di_container().get_transcript_processor()
        results = processor.batch_process_transcripts(file_ids)

        for file_id, result in results.items():
            logger.info(
                "worker_file_result",
                file_id=file_id,
                status=result.status.value,
                participants=len(result.participants),
                mentions=result.user_mappings.slack_mentions,
                errors=result.errors,
            )

        if publish:
            processor.publish_metrics()

        failed = [
            file_id for file_id, r in results.items()
            if r.status != ProcessingStatus.COMPLETED
        ]
        if failed:
            raise ProcessingError(
                f"{len(failed)} of {len(results)} transcripts failed",
                context={"failed_file_ids": failed},
            )

        logger.info("worker_completed", **processor.get_statistics().model_dump())
        return 0

    except AppException as exc:
        logger.error(
            "worker_failed",
            error_code=exc.error_code,
            error=exc.message,
            context=exc.context,
        )
        return 1
    except Exception as exc:
        logger.error("worker_failed", error=str(exc))
        return 1
    finally:
        if processor is not None:
            processor.cleanup()


if __name__ == "__main__":
    sys.exit(main())

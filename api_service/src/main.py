"""
FastAPI backend for the Meeting Transcript Processor.

Endpoints:
    GET  /health                        — Health check + enabled features
    POST /api/v1/transcripts/process    — Process one transcript file
    POST /api/v1/transcripts/batch      — Process many transcript files
    GET  /api/v1/statistics             — Run statistics
    POST /api/v1/actions/assign         — Attach Notion owners to action items
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address
import uvicorn

from shared_utils.config_loader import get_settings
from shared_utils.logging_utils import ContextualLogger, setup_logging
from shared_utils.constants import LogScope, APIEndpoints
from shared_utils.error_handler import AppException, ValidationError, handle_error
from shared_utils.validation import InputValidator
from shared_utils.di_container import get_di_container


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
setup_logging(settings.log_level)
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter

logger.info("api_initialized", environment=settings.environment)


def _error_response(e: Exception, event: str) -> JSONResponse:
    if isinstance(e, AppException):
        logger.warning(event, error_code=e.error_code)
        return JSONResponse(status_code=e.http_status, content=e.to_dict())
    error_response = handle_error(e, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "features": {
            "google_calendar": settings.google_calendar_enabled,
            "user_mapping": settings.user_mapping_enabled,
            "parallel_processing": settings.parallel_processing,
            "metrics": settings.metrics_enabled,
        },
    }


# ---------------------------------------------------------------------------
# Transcript processing
# ---------------------------------------------------------------------------

@app.post(APIEndpoints.PROCESS)
@limiter.limit("30/minute")
def process_transcript(request: Request, body: dict) -> JSONResponse:
    """Process one transcript.

    Body JSON:
        file_id (str): Google Drive file id of the transcript.
    """
    try:
        file_id = InputValidator.validate_file_id(body.get("file_id", ""))
        processor = get_di_container().get_transcript_processor()
        result = processor.process_transcript(file_id)
        return JSONResponse(content=result.model_dump(mode="json"))
    except Exception as e:
        return _error_response(e, "process_transcript_error")


@app.post(APIEndpoints.BATCH)
@limiter.limit("10/minute")
def batch_process_transcripts(request: Request, body: dict) -> JSONResponse:
    """Process many transcripts concurrently.

    Body JSON:
        file_ids (list[str]): Google Drive file ids.
    """
    try:
        file_ids = InputValidator.validate_file_ids(body.get("file_ids"))
        processor = get_di_container().get_transcript_processor()
        results = processor.batch_process_transcripts(file_ids)
        return JSONResponse(
            content={
                "results": {
                    file_id: result.model_dump(mode="json")
                    for file_id, result in results.items()
                },
                "statistics": processor.get_statistics().model_dump(),
            }
        )
    except Exception as e:
        return _error_response(e, "batch_process_error")


@app.get(APIEndpoints.STATISTICS)
def get_statistics() -> JSONResponse:
    """Return accumulated run statistics."""
    try:
        processor = get_di_container().get_transcript_processor()
        return JSONResponse(content=processor.get_statistics().model_dump())
    except Exception as e:
        return _error_response(e, "statistics_error")


@app.post(APIEndpoints.ASSIGN_ACTIONS)
def assign_actions(request: Request, body: dict) -> JSONResponse:
    """Attach Notion user ids to action items whose assignee is known.

    Body JSON:
        actions (list[dict]): Items with ``task`` and optional ``assignee_email``.
        user_mappings (dict): As returned in a processing result.
    """
    try:
        actions = body.get("actions")
        if not isinstance(actions, list):
            raise ValidationError("actions must be a list", context={"type": type(actions).__name__})
        user_mappings = body.get("user_mappings") or {}
        if not isinstance(user_mappings, dict):
            raise ValidationError("user_mappings must be an object")

        processor = get_di_container().get_transcript_processor()
        try:
            assigned = processor.assign_action_owners(actions, user_mappings)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid actions or user_mappings payload",
                context={"errors": e.error_count()},
            )
        return JSONResponse(content={"actions": [a.model_dump(mode="json") for a in assigned]})
    except Exception as e:
        return _error_response(e, "assign_actions_error")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )

"""
API routes for booking intake.
"""

import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from booking_intake import __version__
from booking_intake.config import get_settings
from booking_intake.pipeline.models import (
    ConversationTurn,
    SubmissionResult,
    SubmissionStatus,
)
from booking_intake.pipeline.orchestrator import BookingPipeline
from booking_intake.pipeline.steps import IncompleteBookingError
from booking_intake.api.schemas import (
    ChatRequest,
    EmailRequest,
    ExtractResponse,
    HealthResponse,
    ProcessResponse,
    SubmitRequest,
)


logger = logging.getLogger(__name__)
router = APIRouter()

STATUS_CODES = {
    SubmissionStatus.SUCCEEDED: 200,
    SubmissionStatus.DUPLICATE_DETECTED: 409,
    SubmissionStatus.FAILED: 502,
}


def get_pipeline() -> BookingPipeline:
    """Pipeline wired to the configured collaborators."""
    return BookingPipeline()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """
    Report which collaborators are configured.
    """
    settings = get_settings()
    return HealthResponse(
        status="healthy" if settings.autocab_configured and settings.fireworks_configured else "degraded",
        version=__version__,
        autocab_configured=settings.autocab_configured,
        fireworks_configured=settings.fireworks_configured,
        google_maps_configured=bool(settings.google_maps_api_key),
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/api/emails/extract",
    response_model=ExtractResponse,
    tags=["Emails"],
    summary="Extract a booking from an email",
    description="Rule-based extraction only; nothing is sent to the dispatch system"
)
async def extract_email(request: EmailRequest, pipeline: BookingPipeline = Depends(get_pipeline)):
    """
    Extract booking fields from a raw account-job email.
    """
    try:
        record = pipeline.extract(request.email_content)
        return ExtractResponse(success=True, data=record, warnings=record.warnings)
    except Exception as e:
        logger.exception(f"Error extracting email: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/api/emails/process",
    response_model=ProcessResponse,
    tags=["Emails"],
    summary="Extract and submit a booking email",
    description="Runs extraction, address resolution, payload building and submission"
)
async def process_email(request: EmailRequest, pipeline: BookingPipeline = Depends(get_pipeline)):
    """
    Process a booking email end to end.
    A duplicate job returns 409 and a dispatch failure returns 502.
    """
    try:
        result = await pipeline.process_email(
            request.email_content,
            admin_mode=request.admin_mode,
            existing_id=request.existing_booking_id,
        )
    except Exception as e:
        logger.exception(f"Error processing email: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    outcome = result.submission_result
    response = ProcessResponse(
        success=result.success,
        status=outcome.status.value if outcome else None,
        booking_id=outcome.booking_id if outcome else None,
        message=outcome.message if outcome else None,
        data=result.extracted,
        submission_result=outcome,
        processing_time_seconds=result.metrics.total_duration_seconds if result.metrics else None,
        warnings=result.warnings,
        errors=result.errors,
    )
    status_code = STATUS_CODES[outcome.status] if outcome else 200
    if status_code != 200:
        return JSONResponse(
            status_code=status_code,
            content=response.model_dump(by_alias=True, mode="json"),
        )
    return response


@router.post(
    "/api/chat/extract",
    response_model=ConversationTurn,
    tags=["Chat"],
    summary="Extract booking details from a chat",
    description="Returns the data so far, the missing fields and the next question to ask"
)
async def chat_extract(request: ChatRequest, pipeline: BookingPipeline = Depends(get_pipeline)):
    """
    One turn of conversational booking capture.
    """
    try:
        return await run_in_threadpool(pipeline.extract_incremental, request.message, request.history)
    except Exception as e:
        logger.exception(f"Error extracting chat booking: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/api/bookings/submit",
    response_model=SubmissionResult,
    tags=["Bookings"],
    summary="Submit a booking record",
    description="Create a booking, or update one when existing_booking_id is given"
)
async def submit_booking(request: SubmitRequest, pipeline: BookingPipeline = Depends(get_pipeline)):
    """
    Build and submit a booking.
    Missing stops return 422, a duplicate job 409 and a dispatch failure 502.
    """
    try:
        submission = await pipeline.build_submission(request.data, admin_mode=request.admin_mode)
        result = await pipeline.submit(
            submission,
            existing_id=request.existing_booking_id,
            force_create=request.force_create,
        )
    except IncompleteBookingError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.exception(f"Error submitting booking: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return JSONResponse(
        status_code=STATUS_CODES[result.status],
        content=result.model_dump(by_alias=True, mode="json"),
    )

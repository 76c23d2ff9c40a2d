"""
Pydantic schemas for API request/response validation.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from pydantic import BaseModel, Field

from booking_intake.pipeline.models import (
    ChatMessage,
    ExtractedJobData,
    SubmissionResult,
)


class EmailRequest(BaseModel):
    """Request body carrying a raw booking email."""
    email_content: str = Field(
        ...,
        description="The raw email text from the account customer",
        min_length=1,
        examples=[
            "JOB NUMBER: 4471203\nDate: 15 July 2025\n1ST PICK UP: 09:30\n..."
        ]
    )
    admin_mode: bool = Field(default=False, description="Send the email's price as a manual override")
    existing_booking_id: Optional[str] = Field(default=None, description="Dispatch booking to update")


class ExtractResponse(BaseModel):
    """Extracted booking record."""
    success: bool
    data: ExtractedJobData
    warnings: List[str] = Field(default_factory=list)


class ProcessResponse(BaseModel):
    """Result of extracting and submitting one email."""
    success: bool
    status: Optional[str] = None
    booking_id: Optional[str] = None
    message: Optional[str] = None
    data: Optional[ExtractedJobData] = None
    submission_result: Optional[SubmissionResult] = None
    processing_time_seconds: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "status": "Succeeded",
                "booking_id": "123456",
                "message": "Created booking 123456",
                "processing_time_seconds": 1.4,
            }
        }
    }


class ChatRequest(BaseModel):
    """Latest chat message plus the conversation so far."""
    message: str = Field(..., min_length=1)
    history: List[ChatMessage] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    """Booking record to send to the dispatch system."""
    data: ExtractedJobData
    admin_mode: bool = False
    existing_booking_id: Optional[str] = None
    force_create: bool = Field(default=False, description="Create even if the job number is already booked")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="healthy")
    version: str
    autocab_configured: bool
    fireworks_configured: bool
    google_maps_configured: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None

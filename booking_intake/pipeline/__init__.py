"""
Booking intake pipeline components.

The orchestrator lives in booking_intake.pipeline.orchestrator; it is not
re-exported here because the collaborator clients import these models.
"""

from .models import (
    ExtractedJobData,
    ResolvedAddress,
    BookingSubmission,
    SubmissionResult,
    ConversationTurn,
    PipelineResult,
)

__all__ = [
    "ExtractedJobData",
    "ResolvedAddress",
    "BookingSubmission",
    "SubmissionResult",
    "ConversationTurn",
    "PipelineResult",
]

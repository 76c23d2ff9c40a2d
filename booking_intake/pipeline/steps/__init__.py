"""
Pipeline steps for booking intake.
Each step is a self-contained module that performs a specific task.
"""

from .text_extractor import TextExtractorStep
from .conversational_extractor import ConversationalExtractorStep
from .address_normalizer import AddressNormalizerStep
from .payload_builder import BookingPayloadBuilderStep, IncompleteBookingError
from .submission_workflow import SubmissionWorkflowStep

__all__ = [
    "TextExtractorStep",
    "ConversationalExtractorStep",
    "AddressNormalizerStep",
    "BookingPayloadBuilderStep",
    "IncompleteBookingError",
    "SubmissionWorkflowStep",
]

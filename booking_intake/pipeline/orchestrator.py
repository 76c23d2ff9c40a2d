"""
Pipeline Orchestrator
Coordinates extraction, address resolution, payload building and submission.
"""

import time
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from booking_intake.config import get_settings
from booking_intake.core.autocab_client import AutocabClient, get_autocab_client
from booking_intake.core.cache import LookupCache, build_cache
from booking_intake.core.fireworks_client import FireworksClient, get_fireworks_client
from booking_intake.core.geocoder import GoogleGeocoder, get_geocoder
from booking_intake.pipeline.models import (
    BookingSubmission,
    ChatMessage,
    ConversationTurn,
    ExtractedJobData,
    PipelineMetrics,
    PipelineResult,
    SubmissionResult,
    SubmissionStatus,
    WorkflowState,
)
from booking_intake.pipeline.steps import (
    AddressNormalizerStep,
    BookingPayloadBuilderStep,
    ConversationalExtractorStep,
    IncompleteBookingError,
    SubmissionWorkflowStep,
    TextExtractorStep,
)
from booking_intake.utils.uk_time import uk_now


logger = logging.getLogger(__name__)

TOTAL_STEPS = 4


class BookingPipeline:
    """
    Orchestrates the booking intake pipeline.
    Collaborators are injected so callers and tests can swap them.
    """

    def __init__(
        self,
        autocab: Optional[AutocabClient] = None,
        geocoder: Optional[GoogleGeocoder] = None,
        llm_client: Optional[FireworksClient] = None,
        cache: Optional[LookupCache] = None,
        progress_callback: Optional[Callable[[int, str, str], None]] = None,
        clock: Callable[[], datetime] = uk_now,
    ):
        """
        Initialize the pipeline with its collaborators.

        Args:
            autocab: Dispatch API client (uses default if not provided)
            geocoder: Geocoding client (uses default if not provided)
            llm_client: Fireworks client (uses default if not provided)
            cache: Address lookup cache (built from settings if not provided)
            progress_callback: Optional callback for progress updates
                             (step_number, step_name, status)
            clock: UK wall clock, injectable for tests
        """
        settings = get_settings()
        self.autocab = autocab or get_autocab_client()
        self.geocoder = geocoder or get_geocoder()
        self.llm_client = llm_client or get_fireworks_client()
        self.cache = cache if cache is not None else build_cache(settings.address_cache_ttl_seconds)
        self.progress_callback = progress_callback

        self.steps = {
            "text_extractor": TextExtractorStep(),
            "conversational_extractor": ConversationalExtractorStep(self.llm_client, clock=clock),
            "address_normalizer": AddressNormalizerStep(self.geocoder, self.autocab, self.cache),
            "payload_builder": BookingPayloadBuilderStep(clock=clock),
            "submission_workflow": SubmissionWorkflowStep(self.autocab, clock=clock),
        }

    def _report_progress(self, step: int, name: str, status: str):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(step, name, status)

    def extract(self, text: str) -> ExtractedJobData:
        """Extract a booking record from an email, without side effects."""
        return self.steps["text_extractor"].execute(text)

    def extract_incremental(
        self,
        message: str,
        history: Sequence[ChatMessage] = (),
    ) -> ConversationTurn:
        """Extract booking data from a chat and choose the next question."""
        return self.steps["conversational_extractor"].execute(message, history)

    async def build_submission(
        self,
        record: ExtractedJobData,
        admin_mode: bool = False,
        existing_booking: Optional[Dict[str, Any]] = None,
    ) -> BookingSubmission:
        """
        Resolve the record's stops and build the dispatch payload.
        Raises IncompleteBookingError when pickup or destination is missing.
        """
        missing = [key for key in ("pickup", "destination") if not getattr(record, key)]
        if missing:
            raise IncompleteBookingError(missing)
        resolved = await self.steps["address_normalizer"].resolve_stops(record)
        return self.steps["payload_builder"].execute(
            record, resolved, admin_mode=admin_mode, existing_booking=existing_booking
        )

    async def submit(
        self,
        submission: BookingSubmission,
        existing_id: Optional[str] = None,
        force_create: bool = False,
    ) -> SubmissionResult:
        """Create or update the booking on the dispatch system."""
        return await self.steps["submission_workflow"].execute(
            submission, existing_id=existing_id, force_create=force_create
        )

    async def process_email(
        self,
        text: str,
        admin_mode: bool = False,
        existing_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Process an email through the complete booking pipeline.

        Args:
            text: Raw email text
            admin_mode: Send the extracted price as a manual override
            existing_id: Dispatch booking id to update instead of creating

        Returns:
            PipelineResult with every intermediate product and metrics
        """
        start_time = time.time()
        step_durations = {}
        errors = []
        warnings = []
        collaborator_calls = 0
        sub_bookings = 0

        result = PipelineResult(success=False)

        try:
            # Step 1: Extract
            self._report_progress(1, "Text Extraction", "running")
            step_start = time.time()
            record = self.extract(text)
            step_durations["text_extractor"] = time.time() - step_start
            result.extracted = record
            warnings.extend(record.warnings)
            self._report_progress(1, "Text Extraction", "complete")
            logger.info(f"Step 1 complete: {len(record.stops())} stop(s) for {record.customer_name or 'unknown customer'}")

            # Step 2: Resolve addresses
            self._report_progress(2, "Address Resolution", "running")
            step_start = time.time()
            missing = [key for key in ("pickup", "destination") if not getattr(record, key)]
            if missing:
                raise IncompleteBookingError(missing)
            resolved = await self.steps["address_normalizer"].resolve_stops(record)
            step_durations["address_normalizer"] = time.time() - step_start
            collaborator_calls += 2 * len({address.text for address in resolved.values()})
            self._report_progress(2, "Address Resolution", "complete")
            logger.info(f"Step 2 complete: {len(resolved)} stop(s) resolved")

            # Step 3: Build payload
            self._report_progress(3, "Payload Builder", "running")
            step_start = time.time()
            submission = self.steps["payload_builder"].execute(record, resolved, admin_mode=admin_mode)
            step_durations["payload_builder"] = time.time() - step_start
            result.submission = submission
            self._report_progress(3, "Payload Builder", "complete")
            logger.info(f"Step 3 complete: pickup due {submission.pickup_due_time}")

            # Step 4: Submit
            self._report_progress(4, "Submission", "running")
            step_start = time.time()
            outcome = await self.submit(submission, existing_id=existing_id)
            step_durations["submission_workflow"] = time.time() - step_start
            result.submission_result = outcome
            sub_bookings = len(outcome.group_results)
            collaborator_calls += _submission_calls(outcome)
            if outcome.booking_id_changed:
                warnings.append(
                    f"Booking {outcome.original_booking_id} was replaced by {outcome.booking_id}"
                )
            if outcome.status == SubmissionStatus.SUCCEEDED:
                self._report_progress(4, "Submission", "complete")
            else:
                errors.append(outcome.message)
                self._report_progress(4, "Submission", "failed")
            logger.info(f"Step 4 complete: {outcome.status.value} {outcome.booking_id or ''}".rstrip())

            result.success = outcome.succeeded

        except IncompleteBookingError as e:
            logger.warning(f"Booking incomplete: {e}")
            errors.append(str(e))
            result.success = False

        except Exception as e:
            logger.exception(f"Pipeline error: {e}")
            errors.append(str(e))
            result.success = False

        # Record metrics
        total_duration = time.time() - start_time
        result.metrics = PipelineMetrics(
            total_duration_seconds=round(total_duration, 2),
            step_durations={k: round(v, 2) for k, v in step_durations.items()},
            collaborator_calls=collaborator_calls,
            sub_bookings=sub_bookings,
        )
        result.errors = errors
        result.warnings = warnings

        return result


def _submission_calls(outcome: SubmissionResult) -> int:
    """Dispatch API calls made by a submission, estimated from its states."""
    calls = len(outcome.group_results)
    calls += outcome.state_history.count(WorkflowState.SEARCHING)
    calls += outcome.state_history.count(WorkflowState.UPDATING) * (2 if outcome.overridden else 1)
    return calls

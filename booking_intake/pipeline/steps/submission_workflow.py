"""
Submission Workflow
Sends a BookingSubmission to the dispatch system.

Create: search for the job number first and stop on an exact match.
Edit: refuse a new pickup date before today, fetch for the concurrency
token, update directly, retry a 406 with override, and fall back to
create only when the booking is gone.
A failed edit never cancels or replaces the existing booking.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from booking_intake.core.autocab_client import AutocabApiError, AutocabClient, booking_id_of
from booking_intake.pipeline.models import (
    BookingSubmission,
    GroupResult,
    SubmissionResult,
    SubmissionStatus,
    WorkflowState,
)
from booking_intake.pipeline.steps.payload_builder import rebase_on_existing, split_submission
from booking_intake.utils.uk_time import add_months, uk_now


logger = logging.getLogger(__name__)


class SubmissionWorkflowStep:
    """
    Create/update state machine for dispatch bookings.
    States visited are recorded on the result's state_history.
    """

    SEARCH_MONTHS_BACK = 3
    SEARCH_MONTHS_AHEAD = 6

    def __init__(
        self,
        autocab: AutocabClient,
        clock: Callable[[], datetime] = uk_now,
        allow_past_edit: bool = False,
    ):
        """Initialize with the booking API client."""
        self.autocab = autocab
        self.clock = clock
        self.allow_past_edit = allow_past_edit

    async def execute(
        self,
        submission: BookingSubmission,
        existing_id: Optional[str] = None,
        force_create: bool = False,
    ) -> SubmissionResult:
        """
        Submit a booking.

        Args:
            submission: Payload built for the booking
            existing_id: Dispatch booking id when editing
            force_create: Skip the duplicate search (caller chose "create new")

        Returns:
            SubmissionResult in a terminal state
        """
        history = [WorkflowState.NEW]
        if existing_id:
            return await self._edit(submission, str(existing_id), history)

        reference = submission.your_references.your_reference1
        if reference and not force_create:
            history.append(self._enter(WorkflowState.SEARCHING, reference))
            duplicate = await self._find_duplicate(reference)
            if duplicate is not None:
                history.append(WorkflowState.DUPLICATE_DETECTED)
                duplicate_id = booking_id_of(duplicate)
                logger.warning(f"Job {reference} already booked as {duplicate_id}, not creating")
                return SubmissionResult(
                    status=SubmissionStatus.DUPLICATE_DETECTED,
                    booking_id=duplicate_id,
                    existing_booking=duplicate,
                    state_history=history,
                    message=f"Job {reference} already exists as booking {duplicate_id}",
                )

        return await self._create(submission, history)

    submit = execute

    async def cancel_and_recreate(
        self,
        existing_id: str,
        submission: BookingSubmission,
    ) -> SubmissionResult:
        """
        Cancel a booking and create a new one in its place.

        Changes the booking id. Never used by execute(); callers must
        choose it explicitly.
        """
        logger.warning(f"Cancel and recreate requested for booking {existing_id}")
        history = [WorkflowState.NEW]
        response = await self.autocab.delete_booking(existing_id)
        if not response.ok:
            history.append(WorkflowState.FAILED)
            return SubmissionResult(
                status=SubmissionStatus.FAILED,
                booking_id=existing_id,
                http_status=response.status_code,
                error_body=response.truncated_body,
                state_history=history,
                message=f"Could not cancel booking {existing_id}",
            )
        return await self._create(_without_token(submission), history, original_id=existing_id)

    # -------------------------------------------------------------------------

    def _enter(self, state: WorkflowState, subject: str) -> WorkflowState:
        logger.info(f"Submission {subject}: {state.value}")
        return state

    async def _find_duplicate(self, reference: str) -> Optional[Dict[str, Any]]:
        today = self.clock().date()
        try:
            matches = await self.autocab.search_by_reference(
                reference,
                add_months(today, -self.SEARCH_MONTHS_BACK),
                add_months(today, self.SEARCH_MONTHS_AHEAD),
            )
        except AutocabApiError as e:
            logger.warning(f"Duplicate search failed for {reference}, continuing: {e}")
            return None
        return matches[0] if matches else None

    async def _create(
        self,
        submission: BookingSubmission,
        history: List[WorkflowState],
        original_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Create one booking per passenger group, sequentially."""
        history.append(self._enter(WorkflowState.CREATING, original_id or "new booking"))
        results: List[GroupResult] = []
        for group in split_submission(submission):
            response = await self.autocab.create_booking(group.to_payload())
            if response.ok:
                results.append(GroupResult(
                    passengers=group.passengers,
                    success=True,
                    booking_id=booking_id_of(response.data),
                ))
            else:
                logger.warning(
                    f"Create failed for group of {group.passengers}: "
                    f"HTTP {response.status_code} {response.truncated_body}"
                )
                results.append(GroupResult(
                    passengers=group.passengers,
                    success=False,
                    http_status=response.status_code,
                    error_body=response.truncated_body,
                ))

        created = [r for r in results if r.success]
        if not created:
            history.append(WorkflowState.FAILED)
            return SubmissionResult(
                status=SubmissionStatus.FAILED,
                original_booking_id=original_id,
                http_status=results[-1].http_status,
                error_body=results[-1].error_body,
                group_results=results,
                state_history=history,
                message="Booking could not be created",
            )

        history.append(WorkflowState.SUCCEEDED)
        message = f"Created booking {created[0].booking_id}"
        if len(created) < len(results):
            message += f" ({len(created)} of {len(results)} passenger groups booked)"
        if original_id:
            message += f", replacing {original_id}"
        return SubmissionResult(
            status=SubmissionStatus.SUCCEEDED,
            booking_id=created[0].booking_id,
            original_booking_id=original_id,
            booking_id_changed=original_id is not None and created[0].booking_id != original_id,
            group_results=results,
            state_history=history,
            message=message,
        )

    async def _edit(
        self,
        submission: BookingSubmission,
        existing_id: str,
        history: List[WorkflowState],
    ) -> SubmissionResult:
        if not self.allow_past_edit and self._is_past(submission.pickup_due_time):
            return self._failed(
                history, existing_id, None, None,
                f"Cannot move booking {existing_id} to {submission.pickup_due_time[:10]}, which is in the past",
            )

        history.append(self._enter(WorkflowState.SEARCHING, existing_id))
        try:
            current = await self.autocab.get_booking(existing_id)
        except AutocabApiError as e:
            return self._failed(
                history, existing_id, e.status_code, e.body,
                f"Could not fetch booking {existing_id}; it was left unchanged",
            )

        if current is None:
            logger.warning(f"Booking {existing_id} not found, creating a replacement")
            return await self._create(_without_token(submission), history, original_id=existing_id)

        if _is_archived(current):
            logger.info(f"Booking {existing_id} is archived, attempting direct update anyway")

        history.append(self._enter(WorkflowState.UPDATING, existing_id))
        payload = rebase_on_existing(submission, current).to_payload()
        response = await self.autocab.update_booking(existing_id, payload)
        overridden = False
        if response.status_code == 406:
            logger.warning(f"Update of {existing_id} rejected with 406, retrying with override")
            response = await self.autocab.update_booking(existing_id, payload, override=True)
            overridden = True

        if response.ok:
            history.append(WorkflowState.SUCCEEDED)
            return SubmissionResult(
                status=SubmissionStatus.SUCCEEDED,
                booking_id=existing_id,
                original_booking_id=existing_id,
                overridden=overridden,
                state_history=history,
                message=f"Updated booking {existing_id}",
            )

        if response.status_code == 404:
            logger.warning(f"Booking {existing_id} disappeared during update, creating a replacement")
            return await self._create(_without_token(submission), history, original_id=existing_id)

        return self._failed(
            history, existing_id, response.status_code, response.truncated_body,
            f"Update of booking {existing_id} failed; existing booking preserved",
            overridden=overridden,
        )

    def _failed(
        self,
        history: List[WorkflowState],
        booking_id: str,
        status: Optional[int],
        body: Optional[str],
        message: str,
        overridden: bool = False,
    ) -> SubmissionResult:
        logger.warning(message)
        history.append(WorkflowState.FAILED)
        return SubmissionResult(
            status=SubmissionStatus.FAILED,
            booking_id=booking_id,
            original_booking_id=booking_id,
            http_status=status,
            error_body=body,
            overridden=overridden,
            state_history=history,
            message=message,
        )

    def _is_past(self, pickup_due_time: Optional[str]) -> bool:
        if not pickup_due_time:
            return False
        try:
            pickup = datetime.strptime(pickup_due_time[:16], "%Y-%m-%dT%H:%M")
        except ValueError:
            return False
        return pickup.date() < self.clock().date()


def _is_archived(booking: Dict[str, Any]) -> bool:
    if booking.get("archived") or booking.get("isArchived"):
        return True
    return "archive" in str(booking.get("status") or booking.get("bookingStatus") or "").lower()


def _without_token(submission: BookingSubmission) -> BookingSubmission:
    return submission.model_copy(update={"row_version": None, "preserved_fields": {}})

"""
Booking Payload Builder
Maps an extracted record and its resolved addresses onto the dispatch
system's booking schema.
"""

import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from booking_intake.config import get_settings
from booking_intake.pipeline.models import (
    VIA_KEYS,
    BookingSubmission,
    ExtractedJobData,
    PassengerDetail,
    PricingBlock,
    ResolvedAddress,
    StopPayload,
    StopType,
    YourReferences,
)
from booking_intake.utils.uk_time import is_british_summer_time, uk_now


logger = logging.getLogger(__name__)

MAX_GROUP_SIZE = 8
PLACEHOLDER_PHONE = "+440000000000"

# Booking fields copied from a fetched booking when editing
PRESERVED_FIELDS = (
    "bookingType",
    "companyId",
    "bookedById",
    "bookedAtTime",
    "passengerTimeZone",
    "paymentTransactionReference",
)


class IncompleteBookingError(ValueError):
    """Record lacks the stops needed to build a submission."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


def passenger_groups(total: int, group_size: int = MAX_GROUP_SIZE) -> List[int]:
    """Split a party into sequential groups of at most group_size."""
    groups = []
    remaining = max(total, 1)
    while remaining > 0:
        size = min(remaining, group_size)
        groups.append(size)
        remaining -= size
    return groups


def split_note(note: Optional[str]) -> Tuple[Optional[str], str]:
    """'Name - phone1, phone2' -> (name, phones)."""
    if not note:
        return None, ""
    name, separator, phones = note.partition(" - ")
    name = name.strip()
    return (name or None), (phones.strip() if separator else "")


def build_passenger_mapping(record: ExtractedJobData) -> Tuple[Dict[str, int], List[PassengerDetail]]:
    """
    Index each distinct passenger name across the stop notes in visit order.
    A name seen again at a later stop keeps its first index.
    """
    mapping: Dict[str, int] = {}
    details: List[PassengerDetail] = []
    for _, note in record.notes_in_order():
        name, phones = split_note(note)
        if not name or not phones or name in mapping:
            continue
        mapping[name] = len(details)
        details.append(PassengerDetail(name=name, telephone_number=phones))
    return mapping, details


def clean_phone_number(value: Optional[str]) -> str:
    """First usable number in international form, else a placeholder."""
    for candidate in (value or "").split(","):
        digits = re.sub(r"[^\d+]", "", candidate)
        if digits.startswith("+"):
            return digits
        if digits.startswith("44"):
            return "+" + digits
        if digits.startswith("0") and len(digits) > 1:
            return "+44" + digits[1:]
    return PLACEHOLDER_PHONE


def parse_pickup_datetime(date_text: Optional[str], time_text: Optional[str]) -> Optional[datetime]:
    """Combine DD/MM/YYYY (or YYYY-MM-DD) and HH:MM into a naive datetime."""
    if not date_text or not time_text:
        return None
    for fmt in ("%d/%m/%Y %H:%M", "%Y-%m-%d %H:%M", "%d-%m-%Y %H:%M"):
        try:
            return datetime.strptime(f"{date_text.strip()} {time_text.strip()}", fmt)
        except ValueError:
            continue
    return None


def format_pickup_due_time(moment: datetime) -> str:
    """UK wall-clock time; never converted to UTC."""
    return moment.strftime("%Y-%m-%dT%H:%M:00.000")


class BookingPayloadBuilderStep:
    """
    Builds BookingSubmission payloads.
    Pure apart from the injected clock used when no pickup time is known.
    """

    def __init__(self, clock: Callable[[], datetime] = uk_now):
        settings = get_settings()
        self.clock = clock
        self.customer_id = settings.autocab_customer_id
        self.default_account = settings.default_account_reference
        self.company_name = settings.company_name
        self.our_reference = settings.our_reference

    def execute(
        self,
        record: ExtractedJobData,
        resolved: Mapping[str, ResolvedAddress],
        admin_mode: bool = False,
        existing_booking: Optional[Dict[str, Any]] = None,
    ) -> BookingSubmission:
        """
        Build the submission for a record.

        Args:
            record: Extracted booking record
            resolved: ResolvedAddress per stop key (pickup, via1..via5, destination)
            admin_mode: Attach a manual price override when a price is present
            existing_booking: Fetched booking when editing; supplies rowVersion

        Returns:
            BookingSubmission for the whole party
        """
        missing = [key for key in ("pickup", "destination") if not getattr(record, key)]
        missing += [
            key for key, _, _ in record.stops() if key not in resolved
        ]
        if missing:
            raise IncompleteBookingError(missing)

        mapping, passenger_details = build_passenger_mapping(record)

        def stop(key: str, stop_type: StopType) -> StopPayload:
            note = getattr(record, f"{key}_note") or ""
            name, _ = split_note(note)
            return StopPayload(
                address=resolved[key],
                note=note,
                passenger_details_index=mapping.get(name) if name else None,
                type=stop_type,
            )

        vias = [stop(key, StopType.VIA) for key in VIA_KEYS if getattr(record, key)]
        passengers = record.passengers or 1
        luggage = record.luggage or 0
        account = record.customer_account or self.default_account

        submission = BookingSubmission(
            pickup_due_time=self._pickup_due_time(record),
            pickup=stop("pickup", StopType.PICKUP),
            vias=vias,
            destination=stop("destination", StopType.DESTINATION),
            passengers=passengers,
            luggage=luggage,
            name=record.customer_name or "",
            telephone_number=clean_phone_number(record.customer_phone),
            extra_passenger_details=passenger_details,
            your_references=YourReferences(
                your_reference1=record.job_number or record.customer_reference or "",
                your_reference2=account,
            ),
            driver_note=record.driver_notes or self._driver_note(record, passengers, luggage),
            office_note=self._office_note(record, account),
            customer_id=self.customer_id,
            our_reference=self.our_reference,
            company=self.company_name,
            pricing=self._pricing(record.price) if admin_mode else None,
        )
        if existing_booking:
            submission = rebase_on_existing(submission, existing_booking)

        logger.info(
            f"Built submission: {len(vias)} via(s), {passengers} passenger(s), "
            f"{len(passenger_details)} named passenger(s), pricing={'manual' if submission.pricing else 'tariff'}"
        )
        return submission

    build = execute

    def _pickup_due_time(self, record: ExtractedJobData) -> str:
        moment = parse_pickup_datetime(record.date, record.time)
        if moment is None:
            moment = self.clock().replace(second=0, microsecond=0) + timedelta(hours=1)
            logger.warning(
                f"No usable pickup date/time ({record.date!r} {record.time!r}), "
                f"defaulting to {moment:%d/%m/%Y %H:%M}"
            )
        zone = "BST" if is_british_summer_time(moment) else "GMT"
        logger.info(f"Pickup due {moment:%d/%m/%Y %H:%M} UK local ({zone}), sent without conversion")
        return format_pickup_due_time(moment)

    def _pricing(self, price: Optional[str]) -> Optional[PricingBlock]:
        try:
            amount = float(Decimal(price)) if price else 0.0
        except InvalidOperation:
            logger.warning(f"Ignoring unparseable price {price!r}")
            return None
        if amount <= 0:
            return None
        return PricingBlock(price=amount, cost=amount, fare=amount, cash_amount=amount)

    def _driver_note(self, record: ExtractedJobData, passengers: int, luggage: int) -> str:
        return (
            f"Vehicle: {record.effective_vehicle_type}, "
            f"Passengers: {passengers}, Luggage: {luggage}"
        )

    def _office_note(self, record: ExtractedJobData, account: str) -> str:
        parts = []
        if record.price:
            parts.append(f"Agreed Price: £{record.price}")
        parts.append(f"Customer: {record.customer_name or 'Unknown'}")
        parts.append(f"Account: {account}")
        return " | ".join(parts)


def split_submission(submission: BookingSubmission) -> List[BookingSubmission]:
    """Sub-bookings of at most 8 passengers, in submission order."""
    groups = passenger_groups(submission.passengers)
    if len(groups) == 1:
        return [submission]
    logger.info(f"Splitting {submission.passengers} passengers into groups {groups}")
    return [submission.model_copy(update={"passengers": size}) for size in groups]


def rebase_on_existing(submission: BookingSubmission, existing: Dict[str, Any]) -> BookingSubmission:
    """Carry the concurrency token and booking metadata of a fetched booking."""
    preserved = {key: existing[key] for key in PRESERVED_FIELDS if key in existing}
    return submission.model_copy(update={
        "row_version": existing.get("rowVersion"),
        "preserved_fields": preserved,
    })

"""
Conversational Extractor
Incremental booking capture from a multi-turn chat, driven by an LLM.

The LLM response is parsed through a small state machine:
PRIMARY -> (parse failure) -> STRICT_RETRY -> (parse failure) -> FALLBACK.
A verification pass then re-reads the whole transcript to fix the date.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from booking_intake.core.fireworks_client import FireworksClient
from booking_intake.pipeline.models import (
    REQUIRED_FIELDS,
    ChatMessage,
    ConversationTurn,
    ExtractedJobData,
    ExtractionAttempt,
)
from booking_intake.pipeline.steps.text_extractor import DATE_CHAIN
from booking_intake.prompts import (
    BOOKING_EXTRACTION_STRICT_SYSTEM,
    BOOKING_EXTRACTION_SYSTEM,
    BOOKING_SUMMARY,
    BOOKING_VERIFICATION_PROMPT,
    BOOKING_VERIFICATION_SYSTEM,
    FALLBACK_QUESTION,
    FIELD_QUESTIONS,
    HOUSE_NUMBER_QUESTIONS,
    POSTCODE_QUESTIONS,
)
from booking_intake.utils.json_utils import extract_json_object
from booking_intake.utils.phones import to_international
from booking_intake.utils.uk_time import format_uk_date, uk_now


logger = logging.getLogger(__name__)

UK_POSTCODE = re.compile(r"\b[A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2}\b", re.IGNORECASE)
SAME_DAY = re.compile(r"\b(?:asap|now|today|tonight|immediately|urgent(?:ly)?|emergency|right away)\b", re.IGNORECASE)
CLOCK = re.compile(r"^(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm)?$", re.IGNORECASE)
EMPTY_VALUES = {"", "missing", "null", "none", "unknown", "n/a", "not provided"}

# LLM JSON key -> record field
LLM_FIELDS = {
    "pickup": "pickup",
    "destination": "destination",
    "customerName": "customer_name",
    "phone": "customer_phone",
    "date": "date",
    "time": "time",
    "passengers": "passengers",
    "luggage": "luggage",
    "vehicle": "vehicle_type",
    "vehicleType": "vehicle_type",
    "notes": "driver_notes",
}

# Largest party each vehicle carries, smallest first
VEHICLE_CAPACITY = {"Saloon": 3, "Estate": 5, "MPV": 7, "Large MPV": 16}


def infer_vehicle_type(passengers: int) -> str:
    """Map a passenger count to the smallest vehicle that carries it."""
    if passengers <= 3:
        return "Saloon"
    if passengers <= 5:
        return "Estate"
    if passengers <= 7:
        return "MPV"
    return "Large MPV"


def is_complete_address(value: Optional[str]) -> bool:
    """Chat addresses count only with a comma and a UK postcode."""
    return bool(value) and "," in value and bool(UK_POSTCODE.search(value))


class ConversationalExtractorStep:
    """
    Extracts booking fields from a chat conversation and decides
    which single question to ask next.
    """

    def __init__(
        self,
        llm_client: FireworksClient,
        clock: Callable[[], datetime] = uk_now,
    ):
        """Initialize with a text-completion client and a UK wall clock."""
        self.llm_client = llm_client
        self.clock = clock

    def execute(self, message: str, history: Sequence[ChatMessage] = ()) -> ConversationTurn:
        """
        Extract booking data from the conversation so far.

        Args:
            message: Latest user message
            history: Earlier messages, oldest first

        Returns:
            ConversationTurn with the data, missing fields and next question
        """
        transcript = [{"role": m.role, "content": m.content} for m in history]
        transcript.append({"role": "user", "content": message})

        attempt = ExtractionAttempt.PRIMARY
        raw: Optional[dict] = None
        while attempt != ExtractionAttempt.FALLBACK:
            raw = self._run_attempt(attempt, transcript)
            if raw is not None:
                break
            attempt = (
                ExtractionAttempt.STRICT_RETRY
                if attempt == ExtractionAttempt.PRIMARY
                else ExtractionAttempt.FALLBACK
            )

        if raw is None:
            logger.warning("Booking extraction fell back to an empty record")
            return ConversationTurn(
                data=ExtractedJobData(),
                missing_fields=list(REQUIRED_FIELDS),
                next_question=FALLBACK_QUESTION,
                attempt=ExtractionAttempt.FALLBACK,
            )

        fields = self._normalize(raw)
        fields = self._verify(transcript, fields)
        if not fields.get("date") and self._is_same_day(transcript):
            fields["date"] = format_uk_date(self.clock())

        fields["vehicle_type"] = self._resolve_vehicle(
            fields.get("vehicle_type"), fields.get("passengers")
        )

        data = ExtractedJobData(**fields)
        missing = self.missing_fields(data)
        logger.info(f"Conversation extraction ({attempt.value}): missing {missing or 'nothing'}")
        return ConversationTurn(
            data=data,
            missing_fields=missing,
            next_question=self.next_question(missing, data),
            attempt=attempt,
        )

    extract_incremental = execute

    # -------------------------------------------------------------------------
    # LLM calls
    # -------------------------------------------------------------------------

    def _prompt_values(self) -> Dict[str, str]:
        now = self.clock()
        return {
            "today": format_uk_date(now),
            "tomorrow": format_uk_date(now + timedelta(days=1)),
            "weekday": now.strftime("%A"),
            "now_time": now.strftime("%H:%M"),
        }

    def _run_attempt(self, attempt: ExtractionAttempt, transcript: List[Dict[str, str]]) -> Optional[dict]:
        template = (
            BOOKING_EXTRACTION_SYSTEM
            if attempt == ExtractionAttempt.PRIMARY
            else BOOKING_EXTRACTION_STRICT_SYSTEM
        )
        messages = [{"role": "system", "content": template.format(**self._prompt_values())}]
        messages.extend(transcript)
        return self._complete_json(messages, attempt.value)

    def _complete_json(self, messages: List[Dict[str, str]], label: str) -> Optional[dict]:
        """Call the LLM; None on any failure or non-JSON reply."""
        try:
            content = self.llm_client.complete(messages, temperature=0.1, json_mode=True)
        except Exception as e:
            logger.warning(f"LLM call failed ({label}): {e}")
            return None
        data = extract_json_object(content)
        if data is None:
            logger.warning(f"LLM returned non-JSON ({label}): {(content or '')[:120]!r}")
        return data

    def _verify(self, transcript: List[Dict[str, str]], fields: Dict[str, Any]) -> Dict[str, Any]:
        """Re-read the full transcript; non-empty corrections override."""
        prompt = BOOKING_VERIFICATION_PROMPT.format(
            transcript="\n".join(f"{m['role']}: {m['content']}" for m in transcript),
            date=fields.get("date") or "MISSING",
            time=fields.get("time") or "MISSING",
            pickup=fields.get("pickup") or "MISSING",
            destination=fields.get("destination") or "MISSING",
            customer_name=fields.get("customer_name") or "MISSING",
            phone=fields.get("customer_phone") or "MISSING",
            vehicle=fields.get("vehicle_type") or "MISSING",
            passengers=fields.get("passengers") or "MISSING",
            luggage=fields.get("luggage") if fields.get("luggage") is not None else "MISSING",
            **self._prompt_values(),
        )
        corrections = self._complete_json(
            [
                {"role": "system", "content": BOOKING_VERIFICATION_SYSTEM},
                {"role": "user", "content": prompt},
            ],
            "verification",
        )
        if corrections is None:
            return fields

        verified = dict(fields)
        for key, value in self._normalize(corrections).items():
            if value is not None and verified.get(key) != value:
                logger.info(f"Verification corrected {key}: {verified.get(key)!r} -> {value!r}")
                verified[key] = value
        return verified

    # -------------------------------------------------------------------------
    # Field normalisation
    # -------------------------------------------------------------------------

    def _normalize(self, raw: dict) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for key, field in LLM_FIELDS.items():
            if key not in raw or fields.get(field) is not None:
                continue
            fields[field] = self._normalize_value(field, raw[key])
        return fields

    def _normalize_value(self, field: str, value: Any) -> Any:
        if field in ("passengers", "luggage"):
            return self._parse_count(value, minimum=1 if field == "passengers" else 0)
        if value is None:
            return None
        text = re.sub(r"\s+", " ", str(value)).strip()
        if text.lower() in EMPTY_VALUES:
            return None
        if field == "date":
            return self._parse_date(text)
        if field == "time":
            return self._parse_time(text)
        if field == "customer_phone":
            numbers = [to_international(p) for p in re.split(r"[,/]", text)]
            numbers = [n for n in dict.fromkeys(numbers) if n]
            return ", ".join(numbers) if numbers else text
        return text

    def _parse_count(self, value: Any, minimum: int) -> Optional[int]:
        if isinstance(value, bool) or value is None:
            return None
        try:
            count = int(str(value).strip())
        except ValueError:
            return None
        return count if count >= minimum else None

    def _parse_date(self, text: str) -> Optional[str]:
        lowered = text.lower()
        now = self.clock()
        if lowered in ("today", "asap", "now", "tonight"):
            return format_uk_date(now)
        if lowered == "tomorrow":
            return format_uk_date(now + timedelta(days=1))
        return DATE_CHAIN.first(text)

    def _parse_time(self, text: str) -> Optional[str]:
        lowered = text.lower()
        if lowered in ("asap", "now", "immediately"):
            return self.clock().strftime("%H:%M")
        match = CLOCK.match(lowered)
        if not match:
            return None
        hours, minutes = int(match.group(1)), int(match.group(2) or 0)
        meridiem = match.group(3)
        if meridiem == "pm" and hours < 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0
        if hours > 23 or minutes > 59:
            return None
        return f"{hours:02d}:{minutes:02d}"

    def _is_same_day(self, transcript: List[Dict[str, str]]) -> bool:
        return any(
            m["role"] == "user" and SAME_DAY.search(m["content"])
            for m in transcript
        )

    def _resolve_vehicle(self, stated: Optional[str], passengers: Optional[int]) -> Optional[str]:
        """
        Vehicle follows the passenger count. A named vehicle is kept only
        when it is one of the standard types and large enough.
        """
        if not passengers:
            return None
        for vehicle, capacity in VEHICLE_CAPACITY.items():
            if stated and stated.lower() == vehicle.lower() and capacity >= passengers:
                return vehicle
        return infer_vehicle_type(passengers)

    # -------------------------------------------------------------------------
    # Missing fields and questions
    # -------------------------------------------------------------------------

    def missing_fields(self, data: ExtractedJobData) -> List[str]:
        """Required fields still missing, in the order they are asked for."""
        present = {
            "date": bool(data.date),
            "time": bool(data.time),
            "pickup": is_complete_address(data.pickup),
            "destination": is_complete_address(data.destination),
            "customerName": bool(data.customer_name),
            "phone": bool(data.customer_phone),
            "vehicle": bool(data.vehicle_type),
        }
        return [field for field in REQUIRED_FIELDS if not present[field]]

    def next_question(self, missing: List[str], data: ExtractedJobData) -> str:
        """One question for the first missing field, or the booking summary."""
        if not missing:
            return BOOKING_SUMMARY.format(
                date=data.date,
                time=data.time,
                pickup=data.pickup,
                destination=data.destination,
                customer_name=data.customer_name,
                phone=data.customer_phone,
                vehicle=data.vehicle_type,
            )

        field = missing[0]
        if field in ("pickup", "destination"):
            address = getattr(data, field)
            if address and "," not in address:
                return HOUSE_NUMBER_QUESTIONS[field].format(address=address)
            if address:
                return POSTCODE_QUESTIONS[field].format(address=address)
        return FIELD_QUESTIONS[field]

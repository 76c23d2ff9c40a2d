"""
Text Extractor
Rule-based extraction of booking fields from account-job emails.

Each field is an ordered PatternChain: the first pattern whose match is
accepted by its extractor wins. Multi-stop jobs are read from repeated
"Pick up" / "Drop Off" sections, ordered by time of day.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel

from booking_intake.pipeline.models import ExtractedJobData, VIA_KEYS
from booking_intake.utils.phones import NON_DIGITS, prioritise, to_international, to_national


logger = logging.getLogger(__name__)

Extractor = Callable[[re.Match], Optional[str]]

MONTHS = {
    "january": "01", "february": "02", "march": "03", "april": "04",
    "may": "05", "june": "06", "july": "07", "august": "08",
    "september": "09", "october": "10", "november": "11", "december": "12",
}

# Tour operator names that show up in NAME: lines
TOUR_WORDS = re.compile(r"tour|iceland|scandinavian|natural\s+wonders", re.IGNORECASE)
REJECTED_AIDS = re.compile(
    r"\b(?:none|n/a|flight|ship)\b|name:|\b(?:mrs|mr|miss|ms)\.?\s", re.IGNORECASE
)
MAX_LATER_STOPS = 6
DROP_OFF_SPACING_MINUTES = 30


class PatternChain:
    """Ordered (pattern, extractor) pairs evaluated with first-match-wins."""

    def __init__(self, name: str, rules: Sequence[Tuple[str, Extractor]], flags: int = re.IGNORECASE):
        self.name = name
        self.rules = [(re.compile(pattern, flags), extractor) for pattern, extractor in rules]

    def first(self, text: str) -> Optional[str]:
        for pattern, extractor in self.rules:
            for match in pattern.finditer(text):
                value = extractor(match)
                if value:
                    return value
        return None


# =============================================================================
# Extractors
# =============================================================================

def _group(match: re.Match) -> Optional[str]:
    value = re.sub(r"\s+", " ", match.group(1)).strip(" ,;")
    return value or None


def month_number(name: str) -> Optional[str]:
    key = name.lower()
    if len(key) < 3:
        return None
    for month, number in MONTHS.items():
        if month.startswith(key):
            return number
    return None


def _format_date(day: str, month: str, year: str) -> Optional[str]:
    if not 1 <= int(day) <= 31 or not 1 <= int(month) <= 12:
        return None
    return f"{int(day):02d}/{int(month):02d}/{year}"


def _word_date(match: re.Match) -> Optional[str]:
    month = month_number(match.group(2))
    return _format_date(match.group(1), month, match.group(3)) if month else None


def _numeric_date(match: re.Match) -> Optional[str]:
    return _format_date(match.group(1), match.group(2), match.group(3))


def _iso_date(match: re.Match) -> Optional[str]:
    return _format_date(match.group(3), match.group(2), match.group(1))


def _clock(match: re.Match) -> Optional[str]:
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def _money(match: re.Match) -> Optional[str]:
    try:
        amount = Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None
    return f"{amount:.2f}"


def _count(match: re.Match) -> Optional[str]:
    return match.group(1) if int(match.group(1)) > 0 else None


def _address(match: re.Match) -> Optional[str]:
    value = _group(match)
    if not value or "@" in value or len(value) < 5:
        return None
    return value.split("|")[0].strip()


def _not_none(match: re.Match) -> Optional[str]:
    value = _group(match)
    if not value or value.lower() in ("none", "n/a", "na", "-"):
        return None
    return value


def clean_name(raw: str) -> Optional[str]:
    """Trim a NAME: value; reject tour operators and fragments."""
    name = raw.split("|")[0]
    name = re.split(r"\b(?:BOOKING|PHONE|INFO)\b", name, flags=re.IGNORECASE)[0]
    name = re.sub(r"\s+", " ", name).strip(" ,;:-")
    if len(name) <= 3 or TOUR_WORDS.search(name):
        return None
    return name


def _person_name(match: re.Match) -> Optional[str]:
    name = clean_name(match.group(1))
    return name if name and " " in name else None


def accept_mobility_aids(value: str) -> Optional[str]:
    """Reject names and flight/ship references that leak into the aids line."""
    value = re.sub(r"\s+", " ", value).strip(" ,;")
    if len(value) <= 1 or value in (":", "-", "0"):
        return None
    if REJECTED_AIDS.search(value):
        return None
    return value


def _mobility(match: re.Match) -> Optional[str]:
    return accept_mobility_aids(match.group(1))


# =============================================================================
# Field chains
# =============================================================================

DATE_CHAIN = PatternChain("date", [
    (r"\bDate:\s*(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+),?\s+(\d{4})", _word_date),
    (r"\bDATE:\s*[A-Za-z]+,?\s*(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+),?\s+(\d{4})", _word_date),
    (r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+),?\s+(\d{4})\b", _word_date),
    (r"\b(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})\b", _numeric_date),
    (r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b", _iso_date),
])

TIME_CHAIN = PatternChain("time", [
    (r"1ST\s+PICK\s*UP\s*:?\s*(\d{1,2})[:.](\d{2})", _clock),
    (r"PICK\s*UP\s*:\s*(\d{1,2})[:.](\d{2})", _clock),
    (r"\btime\s*:?\s*(\d{1,2})[:.](\d{2})", _clock),
    (r"\b(\d{1,2}):(\d{2})\b", _clock),
])

# Job Price is ex-VAT and preferred over Total Price
PRICE_CHAIN = PatternChain("price", [
    (r"Job\s+Price\s*:?\s*£?\s*([\d,]+(?:\.\d{1,2})?)", _money),
    (r"(?<!Total )\bPrice\s*:?\s*£\s*([\d,]+(?:\.\d{1,2})?)", _money),
    (r"Total\s+Price\s*:?\s*£?\s*([\d,]+(?:\.\d{1,2})?)", _money),
    (r"£\s*([\d,]+(?:\.\d{1,2})?)", _money),
])

JOB_NUMBER_CHAIN = PatternChain("job_number", [
    (r"\bJOB\s*(?:NUMBER|NO|REF(?:ERENCE)?)\b\.?\s*:?\s*#?\s*([A-Z0-9][A-Z0-9-]{3,})", _group),
    (r"\bBOOKING\s*(?:NUMBER|REF(?:ERENCE)?)\b\s*:?\s*#?\s*([A-Z0-9][A-Z0-9-]{3,})", _group),
])

CUSTOMER_REFERENCE_CHAIN = PatternChain("customer_reference", [
    (r"\b(?:CUSTOMER|CLIENT|YOUR)\s+REF(?:ERENCE)?\s*:\s*([^\n\r|]+)", _not_none),
])

ACCOUNT_CHAIN = PatternChain("customer_account", [
    (r"\bACCOUNT(?:\s+(?:NAME|CODE|NUMBER|REF))?\s*:\s*([^\n\r|]+)", _not_none),
])

TOTAL_PASSENGERS_CHAIN = PatternChain("total_passengers", [
    (r"\bTOTAL\s+(?:PAX|PASSENGERS)\s*:?\s*(\d+)", _count),
])

PASSENGERS_CHAIN = PatternChain("passengers", [
    (r"\bPASSENGERS?\s*:?\s*(\d+)", _count),
    (r"\b(\d+)\s+(?:passengers|pax)\b", _count),
    (r"\bPAX\s*:?\s*(\d+)", _count),
])

LUGGAGE_CHAIN = PatternChain("luggage", [
    (r"\bTOTAL\s+LUGGAGE(?:\s+UNITS)?\s*:?\s*(\d+)", _group),
    (r"\bLUGGAGE(?:\s+UNITS)?\s*:?\s*(\d+)", _group),
    (r"\b(\d+)\s+(?:suitcases|cases|bags)\b", _group),
])

VEHICLE_CHAIN = PatternChain("vehicle_type", [
    (r"\bVEHICLE(?:\s+TYPE)?\s*:\s*([^\n\r|]+)", _not_none),
    (r"\b(Large\s+MPV|MPV|Estate|Saloon|Executive|Minibus)\b", _group),
])

FLIGHT_SHIP_CHAIN = PatternChain("flight_ship", [
    (r"\bFLIGHT\s*/\s*SHIP\s*:\s*([^\n\r|]+)", _not_none),
    (r"\b(?:FLIGHT|SHIP)(?:\s+(?:NUMBER|NO\.?|NAME))?\s*:\s*([^\n\r|]+)", _not_none),
])

MOBILITY_AIDS_CHAIN = PatternChain("mobility_aids", [
    (r"\bMOBILITY\s+AIDS?\s*:\s*([^\n\r|]+)", _mobility),
    (r"\b(?:WHEELCHAIR|AIDS)\s*:\s*([^\n\r|]+)", _mobility),
])

PICKUP_CHAIN = PatternChain("pickup", [
    (r"Pick\s*up[\s\S]*?ADDRESS\s*:\s*([^\n\r]+)", _address),
    (r"\bPICK\s*UP\s+(?:FROM|ADDRESS)\s*:?\s*([^\n\r]+)", _address),
    (r"\b(?:COLLECTION|PICKUP)\s+ADDRESS\s*:\s*([^\n\r]+)", _address),
    (r"^\s*FROM\s*:\s*([^\n\r]+)", _address),
], flags=re.IGNORECASE | re.MULTILINE)

DESTINATION_CHAIN = PatternChain("destination", [
    (r"Drop\s*Off[\s\S]*?ADDRESS\s*:\s*([^\n\r]+)", _address),
    (r"\bDROP\s*OFF\s+(?:AT|ADDRESS)\s*:?\s*([^\n\r]+)", _address),
    (r"\bDESTINATION(?:\s+ADDRESS)?\s*:\s*([^\n\r]+)", _address),
    (r"^\s*TO\s*:\s*([^\n\r]+)", _address),
], flags=re.IGNORECASE | re.MULTILINE)

SECTION_NAME = re.compile(
    r"NAME\s*:\s*([^|\n\r]+?)(?=\s*(?:BOOKING|PHONE|INFO)\b|\s*\||[ \t]*(?:\r?\n|\Z))",
    re.IGNORECASE,
)

CUSTOMER_NAME_CHAIN = PatternChain("customer_name", [
    (r"\b(?:PASSENGER|CUSTOMER|LEAD)\s+NAME\s*:\s*([^\n\r|]+)", _person_name),
    (SECTION_NAME.pattern, _person_name),
])

STOP_SECTION = re.compile(
    r"(Pick\s*up|Drop\s*Off)(?:[ \t]*:?[ \t]*(\d{1,2}:\d{2}))?([\s\S]*?)(?=Pick\s*up|Drop\s*Off|\Z)",
    re.IGNORECASE,
)
SECTION_ADDRESS = re.compile(r"ADDRESS\s*:\s*([^\n\r]+)", re.IGNORECASE)
SECTION_PASSENGERS = re.compile(r"PASSENGERS?\s*:\s*(\d+)", re.IGNORECASE)
PHONE_VALUE = re.compile(r"PHONE\s*:\s*([0-9+/() \t-]+)", re.IGNORECASE)
BARE_UK_NUMBER = re.compile(r"(?<!\d)(\+44\s?\d{4}\s?\d{6}|0\d{10})(?!\d)")
LOOSE_PHONE = re.compile(r"\b(0\d{10}|\d{10})\b")
BOOKING_REFERENCE = re.compile(r"\bBOOKING\s*(?:REF|NO\.?|NUMBER)?\s*:\s*(\d+)", re.IGNORECASE)
DROP_OFF_SPLIT = re.compile(r"Collection\s+Type:\s+Drop\s+Off", re.IGNORECASE)


# =============================================================================
# Stop sections
# =============================================================================

class StopSection(BaseModel):
    """One "Pick up" / "Drop Off" block of a multi-stop job."""
    kind: str
    minutes: int
    explicit_time: Optional[str] = None
    address: str
    body: str
    passengers: Optional[int] = None
    name: Optional[str] = None
    note: Optional[str] = None


def to_minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def phone_numbers_in(value: str) -> List[str]:
    """
    +44 numbers in a PHONE: value.
    Numbers are split on '/'; a chunk that is not one number is split on whitespace.
    """
    numbers = []
    for chunk in value.split("/"):
        whole = to_international(chunk)
        candidates = [whole] if whole else [to_international(token) for token in chunk.split()]
        for number in candidates:
            if number and number not in numbers:
                numbers.append(number)
    return numbers


def section_phones(body: str) -> List[str]:
    numbers: List[str] = []
    for match in PHONE_VALUE.finditer(body):
        numbers.extend(phone_numbers_in(match.group(1)))
    for match in BARE_UK_NUMBER.finditer(body):
        numbers.append(to_international(match.group(1)))
    return [n for i, n in enumerate(numbers) if n and n not in numbers[:i]]


def section_name(body: str) -> Optional[str]:
    for match in SECTION_NAME.finditer(body):
        name = clean_name(match.group(1))
        if name:
            return name
    return None


def stop_note(body: str) -> Optional[str]:
    """'Name - phone1, phone2' for a section, or None without both parts."""
    name = section_name(body)
    phones = section_phones(body)
    if not name or not phones:
        return None
    return f"{name} - {', '.join(phones)}"


class TextExtractorStep:
    """
    Extracts an ExtractedJobData record from raw email text.
    Pure and idempotent; missing fields are left as None.
    """

    def execute(self, email_text: str) -> ExtractedJobData:
        """
        Extract booking fields from an email.

        Args:
            email_text: Raw email body

        Returns:
            ExtractedJobData with every field that could be found
        """
        text = email_text or ""
        fields = {}
        warnings: List[str] = []

        fields["date"] = DATE_CHAIN.first(text)
        fields["time"] = TIME_CHAIN.first(text)
        fields["price"] = PRICE_CHAIN.first(text)
        fields["job_number"] = JOB_NUMBER_CHAIN.first(text)
        fields["customer_reference"] = CUSTOMER_REFERENCE_CHAIN.first(text)
        fields["customer_account"] = ACCOUNT_CHAIN.first(text)
        fields["vehicle_type"] = VEHICLE_CHAIN.first(text)
        fields["flight_ship"] = FLIGHT_SHIP_CHAIN.first(text)

        luggage = LUGGAGE_CHAIN.first(text)
        fields["luggage"] = int(luggage) if luggage else None

        sections = self._stop_sections(text, fields["time"])
        if sections:
            fields.update(self._assign_stops(sections, warnings))
            if not fields["time"]:
                timed = [s for s in sections if s.explicit_time]
                if timed:
                    fields["time"] = timed[0].explicit_time.zfill(5)
        else:
            fields.update(self._fallback_stops(text))

        fields["passengers"] = self._passengers(text, sections)

        name, aids = self._most_populated_contact(sections)
        fields["customer_name"] = name or CUSTOMER_NAME_CHAIN.first(text)
        fields["mobility_aids"] = aids or MOBILITY_AIDS_CHAIN.first(text)
        fields["customer_phone"] = self._customer_phones(text, fields["job_number"])

        fields["driver_notes"] = self._driver_notes(fields)

        record = ExtractedJobData(**fields, warnings=warnings)
        logger.info(
            f"Extracted job {record.job_number or '(no job number)'}: "
            f"{len(record.stops())} stops, {record.passengers or 0} passengers"
        )
        return record

    extract = execute

    def _stop_sections(self, text: str, default_time: Optional[str]) -> List[StopSection]:
        """Parse stop sections and order them by time of day."""
        base = to_minutes(default_time) if default_time else 0
        last_pickup: Optional[int] = None
        untimed_drop_offs = 0
        sections = []

        for match in STOP_SECTION.finditer(text):
            body = match.group(3)
            address_match = SECTION_ADDRESS.search(body)
            if not address_match:
                continue
            address = address_match.group(1).split("|")[0].strip()
            if not address:
                continue

            kind = "pickup" if match.group(1).lower().startswith("pick") else "drop_off"
            clock = match.group(2)
            if clock:
                minutes = to_minutes(clock)
                if kind == "pickup":
                    last_pickup = minutes
            elif kind == "pickup":
                minutes = last_pickup if last_pickup is not None else base
            else:
                untimed_drop_offs += 1
                start = last_pickup if last_pickup is not None else base
                minutes = start + DROP_OFF_SPACING_MINUTES * untimed_drop_offs

            passengers = SECTION_PASSENGERS.search(body)
            sections.append(StopSection(
                kind=kind,
                minutes=minutes,
                explicit_time=clock,
                address=address,
                body=body,
                passengers=int(passengers.group(1)) if passengers else None,
                name=section_name(body),
                note=stop_note(body),
            ))

        # Source documents do not list stops chronologically
        return sorted(sections, key=lambda s: s.minutes)

    def _assign_stops(self, sections: List[StopSection], warnings: List[str]) -> dict:
        first = sections[0]
        fields = {"pickup": first.address, "pickup_note": first.note}

        later: List[StopSection] = []
        seen: Set[str] = set()
        for section in sections[1:]:
            key = section.address.lower()
            if key not in seen:
                seen.add(key)
                later.append(section)

        if len(later) > MAX_LATER_STOPS:
            dropped = later[len(VIA_KEYS):-1]
            message = (
                f"{len(dropped)} stop(s) beyond the via limit were dropped: "
                + "; ".join(s.address for s in dropped)
            )
            logger.warning(message)
            warnings.append(message)
            later = later[:len(VIA_KEYS)] + [later[-1]]

        if later:
            for key, section in zip(VIA_KEYS, later[:-1]):
                fields[key] = section.address
                fields[f"{key}_note"] = section.note
            fields["destination"] = later[-1].address
            fields["destination_note"] = later[-1].note
        return fields

    def _fallback_stops(self, text: str) -> dict:
        chunks = DROP_OFF_SPLIT.split(text)
        addresses = []
        if len(chunks) > 1:
            for chunk in chunks:
                match = SECTION_ADDRESS.search(chunk)
                if match and match.group(1).strip() not in addresses:
                    addresses.append(match.group(1).strip())

        if len(addresses) >= 2:
            later = addresses[1:]
            if len(later) > MAX_LATER_STOPS:
                later = later[:len(VIA_KEYS)] + [later[-1]]
            fields = {"pickup": addresses[0], "destination": later[-1]}
            fields.update(zip(VIA_KEYS, later[:-1]))
            return fields

        return {
            "pickup": PICKUP_CHAIN.first(text),
            "destination": DESTINATION_CHAIN.first(text),
        }

    def _passengers(self, text: str, sections: List[StopSection]) -> Optional[int]:
        total = TOTAL_PASSENGERS_CHAIN.first(text)
        if total:
            return int(total)
        pickups = [s.passengers for s in sections if s.kind == "pickup" and s.passengers]
        if pickups:
            return sum(pickups)
        value = PASSENGERS_CHAIN.first(text)
        return int(value) if value else None

    def _most_populated_contact(self, sections: List[StopSection]) -> Tuple[Optional[str], Optional[str]]:
        """
        Name and mobility aids of the section serving the most passengers.
        Sections are in time order, so ties go to the earliest.
        """
        best: Optional[StopSection] = None
        for section in sections:
            if not (section.passengers and section.name):
                continue
            if best is None or section.passengers > best.passengers:
                best = section
        if best is None:
            return None, None
        return best.name, MOBILITY_AIDS_CHAIN.first(best.body)

    def _customer_phones(self, text: str, job_number: Optional[str]) -> Optional[str]:
        excluded = {match.group(1) for match in BOOKING_REFERENCE.finditer(text)}
        if job_number:
            excluded.add(NON_DIGITS.sub("", job_number))

        candidates = []
        for match in PHONE_VALUE.finditer(text):
            for chunk in match.group(1).split("/"):
                if NON_DIGITS.sub("", chunk) in excluded:
                    continue
                national = to_national(chunk)
                if national:
                    candidates.append(national)
                else:
                    candidates.extend(
                        n for n in (to_national(t) for t in chunk.split()) if n
                    )

        if not candidates:
            for match in LOOSE_PHONE.finditer(text):
                if match.group(1) in excluded:
                    continue
                national = to_national(match.group(1))
                if national:
                    candidates.append(national)

        chosen = prioritise(candidates, limit=3)
        if not chosen:
            return None
        return ", ".join("+44" + number[1:] for number in chosen)

    def _driver_notes(self, fields: dict) -> str:
        parts = [f"Vehicle: {fields.get('vehicle_type') or 'Saloon'}"]
        if fields.get("passengers"):
            parts.append(f"Passengers: {fields['passengers']}")
        if fields.get("luggage") is not None:
            parts.append(f"Luggage: {fields['luggage']}")
        if fields.get("mobility_aids"):
            parts.append(f"Aids: {fields['mobility_aids']}")
        if fields.get("flight_ship"):
            parts.append(f"Flight/Ship: {fields['flight_ship']}")
        return ", ".join(parts)

"""
Address Normalizer
Parses free-text UK addresses and resolves coordinate and dispatch zone.
"""

import asyncio
import logging
import re
from typing import Dict, Optional

from booking_intake.config import get_settings
from booking_intake.core.autocab_client import AutocabClient
from booking_intake.core.cache import LookupCache, NullCache
from booking_intake.core.geocoder import GoogleGeocoder
from booking_intake.pipeline.models import (
    AddressParts,
    Coordinate,
    ExtractedJobData,
    ResolvedAddress,
    Zone,
)


logger = logging.getLogger(__name__)

TRAILING_POSTCODE = re.compile(r"([A-Z]{1,2}\d{1,2}[A-Z]?\s*\d[A-Z]{2})$", re.IGNORECASE)
HOUSE_NUMBER = re.compile(r"^(\d+[A-Z]?)(?:[\s,]+(.*))?$", re.IGNORECASE)

# Local landmarks customers refer to by name
WELL_KNOWN_ADDRESSES = {
    "east street": "21 East Street, Canterbury, CT1 1ED",
    "canterbury cathedral": "Canterbury Cathedral, Cathedral Lodge, Canterbury, CT1 2EH",
    "hospital": "Kent and Canterbury Hospital, Ethelbert Road, Canterbury, CT1 3NG",
    "canterbury hospital": "Kent and Canterbury Hospital, Ethelbert Road, Canterbury, CT1 3NG",
    "station": "Canterbury East Station, Station Road East, Canterbury, CT1 2RB",
    "canterbury station": "Canterbury East Station, Station Road East, Canterbury, CT1 2RB",
    "university": "University of Kent, Canterbury, CT2 7NZ",
    "christchurch": "Canterbury Christ Church University, North Holmes Road, Canterbury, CT1 1QU",
    "christ church": "Canterbury Christ Church University, North Holmes Road, Canterbury, CT1 1QU",
    "westgate": "Westgate Shopping Centre, Canterbury, CT1 2BL",
    "high street": "Canterbury High Street, Canterbury, CT1 2JE",
    "margate police station": "Odell House, Fort Hill, Margate, CT9 1HL",
    "margate hospital": "Queen Elizabeth The Queen Mother Hospital, St Peters Road, Margate, CT9 4AN",
    "ashford hospital": "William Harvey Hospital, Kennington Road, Ashford, TN24 0LZ",
    "dover hospital": "Dover Hospital, Buckland Hospital, Dover, CT17 0HD",
    "folkestone hospital": "Folkestone Hospital, Radnor Park Avenue, Folkestone, CT19 5BN",
}

# Longest key first so "margate hospital" wins over "hospital"
_LANDMARK_KEYS = sorted(WELL_KNOWN_ADDRESSES, key=len, reverse=True)


def split_postcode(text: str) -> tuple:
    """Return (text without trailing postcode, uppercased postcode)."""
    cleaned = text.strip().rstrip(",").strip()
    match = TRAILING_POSTCODE.search(cleaned)
    if not match:
        return cleaned, ""
    remainder = cleaned[:match.start()].strip().rstrip(",").strip()
    return remainder, match.group(1).upper()


def apply_well_known_address(text: str) -> str:
    """
    Replace a landmark shorthand with its full address.
    Inputs that already end in a postcode are left alone.
    """
    if split_postcode(text)[1]:
        return text
    lowered = text.lower()
    for key in _LANDMARK_KEYS:
        if key in lowered:
            return WELL_KNOWN_ADDRESSES[key]
    return text


def parse_address_parts(text: str) -> AddressParts:
    """Split a UK address into house, street, town and postcode."""
    remainder, postcode = split_postcode(text)
    parts = [part.strip() for part in remainder.split(",") if part.strip()]
    if not parts:
        return AddressParts(postcode=postcode)

    house, street = "", parts[0]
    match = HOUSE_NUMBER.match(parts[0])
    if match:
        house = match.group(1)
        street = (match.group(2) or "").strip()
        if not street and len(parts) > 1:
            # "12, High Street, Town": number in its own segment
            street = parts.pop(1)

    return AddressParts(
        house=house,
        street=street,
        town=", ".join(parts[1:]),
        postcode=postcode,
    )


class AddressNormalizerStep:
    """
    Turns free-text addresses into ResolvedAddress records.
    Geocoding and zone lookup never raise; failures use configured fallbacks.
    """

    def __init__(
        self,
        geocoder: GoogleGeocoder,
        autocab: AutocabClient,
        cache: Optional[LookupCache] = None,
    ):
        """Initialize with collaborators and an optional lookup cache."""
        settings = get_settings()
        self.geocoder = geocoder
        self.autocab = autocab
        self.cache = cache if cache is not None else NullCache()
        self.fallback_coordinate = Coordinate(
            lat=settings.fallback_latitude, lng=settings.fallback_longitude
        )
        self.default_zone = Zone(
            id=settings.default_zone_id,
            name=settings.default_zone_name,
            descriptor=settings.default_zone_descriptor,
        )

    async def execute(self, raw_text: str) -> ResolvedAddress:
        """
        Normalize one address.

        Args:
            raw_text: Address as typed or extracted

        Returns:
            ResolvedAddress with coordinate and zone always populated
        """
        text = apply_well_known_address(raw_text.strip())
        if text != raw_text.strip():
            logger.info(f"Well-known address: '{raw_text}' -> '{text}'")

        cached = self.cache.get(text)
        if cached is not None:
            return cached

        parts = parse_address_parts(text)
        coordinate, zone = await asyncio.gather(
            self._geocode(text), self._lookup_zone(text)
        )
        resolved = ResolvedAddress(
            text=text,
            house=parts.house,
            street=parts.street,
            town=parts.town,
            postcode=parts.postcode,
            coordinate=coordinate,
            zone=zone,
        )
        self.cache.set(text, resolved)
        return resolved

    normalize = execute

    async def resolve_stops(self, record: ExtractedJobData) -> Dict[str, ResolvedAddress]:
        """Resolve every stop of a record concurrently, keyed by stop key."""
        stops = record.stops()
        distinct = list(dict.fromkeys(address for _, address, _ in stops))
        resolved = await asyncio.gather(*(self.execute(address) for address in distinct))
        by_text = dict(zip(distinct, resolved))
        return {key: by_text[address] for key, address, _ in stops}

    async def _geocode(self, text: str) -> Coordinate:
        try:
            coordinate = await self.geocoder.geocode(text)
        except Exception as e:
            logger.warning(f"Geocoding failed for '{text}': {e}")
            coordinate = None
        if coordinate is None:
            logger.warning(f"Using fallback centre for '{text}'")
            return self.fallback_coordinate
        return coordinate

    async def _lookup_zone(self, text: str) -> Zone:
        try:
            zone = await self.autocab.lookup_zone(text)
        except Exception as e:
            logger.warning(f"Zone lookup failed for '{text}': {e}")
            zone = None
        if zone is None:
            logger.warning(f"Using default zone for '{text}'")
            return self.default_zone
        return zone

"""
AUTOCAB booking API client.
Wraps the booking, search and address lookup endpoints used by the
submission workflow and the address normalizer.
"""

import logging
from datetime import date
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from booking_intake.config import get_settings
from booking_intake.core.http_client import RetryingHttpClient
from booking_intake.pipeline.models import Zone


logger = logging.getLogger(__name__)

ERROR_BODY_LIMIT = 200


class AutocabApiError(Exception):
    """Non-2xx response where the caller needs a booking or search result."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body[:ERROR_BODY_LIMIT]
        super().__init__(f"AUTOCAB API returned {status_code}: {self.body}")


class ApiResponse(BaseModel):
    """Status and body of a booking API call."""
    status_code: int
    text: str = ""
    data: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def truncated_body(self) -> str:
        return self.text[:ERROR_BODY_LIMIT]

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiResponse":
        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None
        return cls(status_code=response.status_code, text=response.text, data=data)


class AutocabClient:
    """
    Client for the AUTOCAB booking API.
    All calls are async and share the collaborator retry policy.
    """

    SEARCH_TYPES = [
        "Active",
        "ExchangedActive",
        "Advanced",
        "Mobile",
        "ExchangedMobile",
        "Completed",
        "ExchangedCompleted",
    ]
    SEARCH_PAGE_SIZE = 100

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = settings.autocab_api_key if api_key is None else api_key
        self.http = RetryingHttpClient(
            base_url=base_url or settings.autocab_base_url,
            headers={
                "Ocp-Apim-Subscription-Key": self.api_key,
                "Content-Type": "application/json",
            },
            transport=transport,
            backoff_seconds=backoff_seconds,
        )

    async def _call(self, method: str, path: str, **kwargs) -> ApiResponse:
        response = await self.http.request(method, path, **kwargs)
        return ApiResponse.from_response(response)

    async def search_by_reference(
        self,
        reference: str,
        from_date: date,
        to_date: date,
    ) -> List[Dict[str, Any]]:
        """
        Search bookings carrying a given yourReference1 in a date window.

        Raises AutocabApiError on non-2xx. Matching is exact on the
        returned bookings since the API search is not.
        """
        payload = {
            "from": from_date.strftime("%Y-%m-%dT00:00:00.000Z"),
            "to": to_date.strftime("%Y-%m-%dT23:59:59.999Z"),
            "yourReference1": reference,
            "customerId": "",
            "companyIds": [],
            "telephoneNumber": "",
            "capabilities": [],
            "capabilityMatchType": "Any",
            "exactMatch": True,
            "ignorePostcode": False,
            "ignoreTown": False,
            "types": self.SEARCH_TYPES,
            "pageSize": self.SEARCH_PAGE_SIZE,
        }
        result = await self._call("POST", "/booking/v1/search", json=payload)
        if not result.ok:
            raise AutocabApiError(result.status_code, result.text)

        data = result.data
        bookings = data if isinstance(data, list) else (data or {}).get("bookings") or []
        return [
            booking for booking in bookings
            if reference_of(booking) == reference
        ]

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a booking. None on 404, AutocabApiError on other failures."""
        result = await self._call("GET", f"/booking/v1/booking/{booking_id}")
        if result.status_code == 404:
            return None
        if not result.ok:
            raise AutocabApiError(result.status_code, result.text)
        return result.data

    async def create_booking(self, payload: Dict[str, Any]) -> ApiResponse:
        return await self._call("POST", "/booking/v1/booking", json=payload)

    async def update_booking(
        self,
        booking_id: str,
        payload: Dict[str, Any],
        override: bool = False,
    ) -> ApiResponse:
        params = {"override": "true"} if override else None
        return await self._call(
            "POST", f"/booking/v1/booking/{booking_id}", json=payload, params=params
        )

    async def delete_booking(self, booking_id: str) -> ApiResponse:
        return await self._call("DELETE", f"/booking/v1/booking/{booking_id}")

    async def lookup_zone(self, address: str) -> Optional[Zone]:
        """
        Resolve the dispatch zone for an address.
        Returns None when the lookup fails or carries no zone.
        """
        result = await self._call(
            "GET", "/booking/v1/addressFromText", params={"text": address}
        )
        if not result.ok or not isinstance(result.data, dict):
            logger.warning(f"Zone lookup failed for '{address}': HTTP {result.status_code}")
            return None

        zone = result.data.get("zone")
        if not zone or zone.get("id") is None:
            return None
        return Zone(
            id=zone["id"],
            name=zone.get("name") or "",
            descriptor=zone.get("descriptor") or "",
        )


def reference_of(booking: Dict[str, Any]) -> str:
    """yourReference1 of a booking returned by the API."""
    refs = booking.get("yourReferences") or {}
    return refs.get("yourReference1") or booking.get("yourReference1") or ""


def booking_id_of(data: Any) -> Optional[str]:
    """Booking id from a create/get response body."""
    if isinstance(data, dict):
        booking_id = data.get("id") or data.get("bookingId")
        if booking_id is not None:
            return str(booking_id)
    return None


@lru_cache()
def get_autocab_client() -> AutocabClient:
    """Get cached AUTOCAB client instance."""
    return AutocabClient()

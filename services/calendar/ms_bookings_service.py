"""
=====================================================
Voice Scheduling Platform - Microsoft Bookings Source
=====================================================
"""

import httpx
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, List, Dict, Any
from loguru import logger

from config.settings import get_settings
from services.booking.models import Slot, Appointment
from services.calendar.calendar_base import (
    CalendarSourceBase,
    CalendarSourceError,
    BookingResult,
)
from services.tenants.tenant_base import Tenant


class MSBookingsService(CalendarSourceBase):
    """
    Microsoft Bookings integration via Microsoft Graph API

    Per-tenant descriptor config:
    - business_id: Bookings business (required)
    - service_id: Service booked for voice appointments
    - staff_ids: Staff to check availability for (default: all)
    - windows_timezone: Graph time zone name for the business
    """

    source_tag = "ms_bookings"

    def __init__(self, config: Dict[str, Any] = None):
        """
        Initialize MS Bookings source

        Args:
            config: Descriptor config merged over client credentials from settings
        """
        settings = get_settings()
        config = config or {}

        self.tenant_id = config.get('tenant_id', settings.ms_bookings_tenant_id)
        self.client_id = config.get('client_id', settings.ms_bookings_client_id)
        self.client_secret = config.get('client_secret', settings.ms_bookings_client_secret)
        self.business_id = config.get('business_id', '')
        self.service_id = config.get('service_id', '')
        self.staff_ids: List[str] = list(config.get('staff_ids') or [])
        self.windows_timezone = config.get('windows_timezone', 'Eastern Standard Time')

        # Graph API URLs
        self.token_url = f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"
        self.graph_url = "https://graph.microsoft.com/v1.0"

        # Caching
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._http_client: Optional[httpx.AsyncClient] = None

    async def is_available(self) -> bool:
        """Check if the source is configured"""
        return bool(self.tenant_id and self.client_id and
                   self.client_secret and self.business_id)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def _get_access_token(self) -> str:
        """
        Get access token using client credentials flow

        Returns:
            Access token
        """
        # Check if cached token is still valid
        if self._access_token and self._token_expires_at:
            if datetime.now(timezone.utc) < self._token_expires_at:
                return self._access_token

        client = await self._get_client()
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": "https://graph.microsoft.com/.default"
        }

        response = await client.post(self.token_url, data=data)
        response.raise_for_status()

        token_data = response.json()
        self._access_token = token_data['access_token']

        # Cache token expiration (subtract 5 minutes buffer)
        expires_in = token_data.get('expires_in', 3600)
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in - 300)

        logger.debug("MS Bookings: Obtained new access token")
        return self._access_token

    async def _make_request(self, method: str, endpoint: str,
                           params: Dict = None, json_data: Dict = None) -> Dict:
        """
        Make authenticated request to Graph API

        Raises:
            CalendarSourceError: On transport or HTTP errors
        """
        try:
            token = await self._get_access_token()
            client = await self._get_client()

            url = f"{self.graph_url}{endpoint}"
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json"
            }

            if method == "GET":
                response = await client.get(url, headers=headers, params=params)
            elif method == "POST":
                response = await client.post(url, headers=headers, json=json_data)
            else:
                raise ValueError(f"Unsupported method: {method}")

            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"MS Bookings: HTTP error {e.response.status_code}: {e}")
            raise CalendarSourceError(f"Graph returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"MS Bookings: Request failed: {e}")
            raise CalendarSourceError(str(e)) from e

    async def _staff_ids(self) -> List[str]:
        if self.staff_ids:
            return self.staff_ids
        endpoint = f"/solutions/bookingBusinesses/{self.business_id}/staffMembers"
        result = await self._make_request("GET", endpoint)
        self.staff_ids = [item.get('id', '') for item in result.get('value', []) if item.get('id')]
        logger.info(f"MS Bookings: Loaded {len(self.staff_ids)} staff members")
        return self.staff_ids

    async def get_available_slots(self, tenant: Tenant, day: date) -> List[Slot]:
        """
        Get open slots for one tenant-local date

        Availability windows returned by Graph are cut into slots of the
        tenant's appointment duration.
        """
        if not await self.is_available():
            raise CalendarSourceError("MS Bookings not configured")

        duration = tenant.slot_duration_minutes
        start_of_day = datetime.combine(day, time(0, 0))
        end_of_day = start_of_day + timedelta(days=1)

        payload = {
            "startDateTime": {
                "dateTime": start_of_day.strftime('%Y-%m-%dT%H:%M:%S'),
                "timeZone": self.windows_timezone
            },
            "endDateTime": {
                "dateTime": end_of_day.strftime('%Y-%m-%dT%H:%M:%S'),
                "timeZone": self.windows_timezone
            },
            "staffIds": await self._staff_ids()
        }

        endpoint = f"/solutions/bookingBusinesses/{self.business_id}/getStaffAvailability"
        result = await self._make_request("POST", endpoint, json_data=payload)

        starts = set()
        for staff_avail in result.get('value', []):
            for item in staff_avail.get('availabilityItems', []):
                if item.get('status') != 'available':
                    continue
                start_str = item.get('startDateTime', {}).get('dateTime', '')
                end_str = item.get('endDateTime', {}).get('dateTime', '')
                if not start_str or not end_str:
                    continue

                # Times come back in the requested time zone; keep them naive
                window_start = datetime.fromisoformat(start_str.replace('Z', '+00:00')[:19])
                window_end = datetime.fromisoformat(end_str.replace('Z', '+00:00')[:19])

                current = window_start
                while current + timedelta(minutes=duration) <= window_end:
                    if current.date() == day:
                        starts.add(current.time())
                    current += timedelta(minutes=duration)

        slots = [Slot(day, start, duration) for start in sorted(starts)]
        logger.info(f"MS Bookings: Found {len(slots)} available slots for {tenant.id} on {day}")
        return slots

    async def create_booking(self, tenant: Tenant, appointment: Appointment) -> BookingResult:
        """Write a confirmed appointment into Bookings"""
        if not await self.is_available():
            return BookingResult(success=False, error_message="MS Bookings not configured")

        start = appointment.slot.start_datetime
        end = appointment.slot.end_datetime

        payload = {
            "@odata.type": "#microsoft.graph.bookingAppointment",
            "serviceId": self.service_id,
            "staffMemberIds": self.staff_ids[:1],
            "startDateTime": {
                "@odata.type": "#microsoft.graph.dateTimeTimeZone",
                "dateTime": start.strftime('%Y-%m-%dT%H:%M:%S'),
                "timeZone": self.windows_timezone
            },
            "endDateTime": {
                "@odata.type": "#microsoft.graph.dateTimeTimeZone",
                "dateTime": end.strftime('%Y-%m-%dT%H:%M:%S'),
                "timeZone": self.windows_timezone
            },
            "customerName": appointment.customer_name,
            "customerPhone": appointment.customer_phone,
            "customerTimeZone": self.windows_timezone,
            "customerNotes": f"Booked by phone. Confirmation {appointment.confirmation_code}",
            "isLocationOnline": False,
            "optOutOfCustomerEmail": True
        }

        try:
            endpoint = f"/solutions/bookingBusinesses/{self.business_id}/appointments"
            result = await self._make_request("POST", endpoint, json_data=payload)
        except CalendarSourceError as e:
            return BookingResult(success=False, error_message=str(e))

        if result.get('id'):
            logger.info(f"MS Bookings: Created appointment for {appointment.customer_name}")
            return BookingResult(success=True, external_id=result['id'])

        return BookingResult(success=False, error_message="Failed to create appointment")

    async def close(self):
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def create_calendar_service(config: Dict[str, Any]) -> MSBookingsService:
    """
    Factory function to create the Bookings source

    Args:
        config: Descriptor config (business_id, service_id, staff_ids, ...)

    Returns:
        MSBookingsService instance
    """
    return MSBookingsService(config)

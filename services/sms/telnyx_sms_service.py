"""
=====================================================
Voice Scheduling Platform - Telnyx SMS Service
=====================================================

Sends booking confirmation SMS via the Telnyx API right after a
booking is made. Text comes from the caller's language pack.
"""

import httpx
from typing import Optional
from loguru import logger

from config.settings import get_settings
from services.booking.models import Appointment, AppointmentStatus
from services.conversation.language import LanguagePack
from services.phone.phone_normalizer import is_complete_phone
from services.tenants.tenant_base import Tenant


class TelnyxSMSService:
    """
    Send SMS messages via Telnyx REST API.
    Uses httpx directly (no SDK needed).
    """

    API_URL = "https://api.telnyx.com/v2/messages"

    def __init__(self, api_key: str = None, from_number: str = None):
        settings = get_settings()
        self.api_key = settings.telnyx_api_key if api_key is None else api_key
        self.from_number = settings.telnyx_phone_number if from_number is None else from_number
        self._available = bool(self.api_key and self.from_number)

        if self._available:
            logger.info(f"Telnyx SMS: Configured (from={self.from_number})")
        else:
            logger.warning("Telnyx SMS: Not configured (missing TELNYX_API_KEY or TELNYX_PHONE_NUMBER)")

    def is_available(self) -> bool:
        return self._available

    async def send_sms(self, to_number: str, message: str) -> bool:
        """
        Send an SMS message.

        Args:
            to_number: Recipient phone number (E.164 format, e.g. +16471234567)
            message: Message text

        Returns:
            True if sent successfully
        """
        if not self._available:
            logger.warning("Telnyx SMS: Cannot send - not configured")
            return False

        if not is_complete_phone(to_number):
            logger.warning(f"Telnyx SMS: Cannot send - invalid number: {to_number}")
            return False

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.API_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self.from_number,
                        "to": to_number,
                        "text": message,
                    },
                    timeout=10.0,
                )

            if response.status_code in (200, 201, 202):
                data = response.json().get("data", {})
                msg_id = data.get("id", "unknown")
                logger.info(f"Telnyx SMS: Sent to {to_number} (id={msg_id})")
                return True
            else:
                logger.error(f"Telnyx SMS: Failed {response.status_code} - {response.text}")
                return False

        except httpx.HTTPError as e:
            logger.error(f"Telnyx SMS: Exception sending to {to_number}: {e}")
            return False

    async def send_booking_confirmation(
        self,
        appointment: Appointment,
        tenant: Tenant,
        pack: LanguagePack,
    ) -> bool:
        """
        Send booking confirmation SMS.

        Args:
            appointment: The stored appointment
            tenant: Tenant the appointment belongs to
            pack: Language pack of the call
        """
        key = "sms_pending" if appointment.status == AppointmentStatus.PENDING else "sms_confirmation"
        message = pack.say(
            key,
            name=appointment.customer_name,
            business=tenant.name,
            date=pack.speak_date(appointment.day),
            time=pack.speak_time(appointment.start),
            code=appointment.confirmation_code,
        )

        logger.info(f"Telnyx SMS: Sending booking confirmation to {appointment.customer_phone}")
        return await self.send_sms(appointment.customer_phone, message)


# Global instance
_sms_service: Optional[TelnyxSMSService] = None


def get_sms_service() -> TelnyxSMSService:
    """Get global SMS service instance"""
    global _sms_service
    if _sms_service is None:
        _sms_service = TelnyxSMSService()
    return _sms_service

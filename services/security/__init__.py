"""Webhook security for the voice scheduling platform"""

from .middleware import (
    TwilioSignatureValidator,
    validate_twilio_signature,
)

__all__ = [
    "TwilioSignatureValidator",
    "validate_twilio_signature",
]

"""
=====================================================
Voice Scheduling Platform - Error Types
=====================================================
Exceptions raised by the scheduling engine. Caller-facing outcomes
that are part of normal call flow (tenant not found, slot taken, ...)
are result values, not exceptions.
"""


class VoiceEngineError(Exception):
    """Base class for engine errors"""


class SessionExpired(VoiceEngineError):
    """Context token missing, truncated or unparseable"""


class TenantConfigError(VoiceEngineError):
    """Tenant configuration is invalid"""


class BookingValidationError(VoiceEngineError):
    """Booking request failed validation before reaching storage"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

"""
=====================================================
Voice Scheduling Platform - Webhook Signature Validation
=====================================================
Twilio signs every webhook with X-Twilio-Signature over the full
callback URL (query string included) and the POST parameters, so a
context token cannot be altered without detection.
"""

from typing import Optional

from fastapi import Request, HTTPException, status
from twilio.request_validator import RequestValidator
from loguru import logger

from config.settings import get_settings


class TwilioSignatureValidator:
    """
    Validates Twilio webhook request signatures.

    Twilio signs all webhook requests with X-Twilio-Signature header.
    This prevents attackers from sending fake webhook requests.
    """

    def __init__(self, auth_token: str):
        """
        Initialize validator with Twilio auth token.

        Args:
            auth_token: Twilio account auth token
        """
        self.validator = RequestValidator(auth_token)

    @staticmethod
    def signed_url(request: Request, public_base_url: Optional[str] = None) -> str:
        """
        The URL Twilio signed: the public address when one is configured
        (we are behind a proxy), otherwise the forwarded host.
        """
        if public_base_url:
            base = public_base_url.rstrip("/")
        else:
            proto = request.headers.get("X-Forwarded-Proto", request.url.scheme)
            host = request.headers.get("X-Forwarded-Host", request.headers.get("Host", ""))
            base = f"{proto}://{host}"

        url = f"{base}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url

    async def validate_request(self, request: Request, url: str) -> bool:
        """
        Validate a Twilio webhook request.

        Args:
            request: FastAPI request object
            url: The full URL Twilio called

        Returns:
            True if signature is valid, False otherwise
        """
        signature = request.headers.get("X-Twilio-Signature", "")
        if not signature:
            logger.warning("Twilio: Missing X-Twilio-Signature header")
            return False

        if request.method == "POST":
            form_data = await request.form()
            params = dict(form_data)
        else:
            params = {}

        is_valid = self.validator.validate(url, params, signature)

        if not is_valid:
            logger.warning(
                f"Twilio: Invalid signature for {url}. "
                f"Expected valid signature for params: {list(params.keys())}"
            )

        return is_valid


# Dependency for Twilio webhook endpoints
async def validate_twilio_signature(request: Request) -> bool:
    """
    FastAPI dependency to validate Twilio webhook signatures.

    Usage:
        @router.post("/voice/turn", dependencies=[Depends(validate_twilio_signature)])
    """
    settings = get_settings()

    if not settings.validate_twilio_signature:
        return True

    validator = TwilioSignatureValidator(settings.twilio_auth_token)
    url = validator.signed_url(request, settings.public_base_url)

    if not await validator.validate_request(request, url):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid Twilio signature"
        )

    return True

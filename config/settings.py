"""
=====================================================
Voice Scheduling Platform - Configuration Module
=====================================================
Centralized configuration management using pydantic-settings
"""

import json
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )

    # =====================================================
    # APPLICATION
    # =====================================================
    app_name: str = "Voice Scheduling Platform"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="logs/voice-platform.log", alias="LOG_FILE")
    debug: bool = False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    # Store as string internally to avoid JSON parsing issues
    # Will be converted to List[str] by property
    allowed_origins_str: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        alias="ALLOWED_ORIGINS"
    )

    # Public address the telephony provider calls back on
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # =====================================================
    # STORAGE
    # =====================================================
    storage_backend: str = Field(default="memory", alias="STORAGE_BACKEND")  # memory | postgres
    tenant_source: str = Field(default="yaml", alias="TENANT_SOURCE")  # yaml | postgres
    tenants_file: str = Field(default="", alias="TENANTS_FILE")
    database_url: str = Field(default="", alias="DATABASE_URL")

    # =====================================================
    # REDIS
    # =====================================================
    redis_url: str = Field(default="", alias="REDIS_URL")
    audio_clip_ttl: int = 3600  # 1 hour

    # =====================================================
    # TWILIO
    # =====================================================
    twilio_account_sid: str = Field(default="", alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", alias="TWILIO_AUTH_TOKEN")
    validate_twilio_signature: bool = Field(default=False, alias="VALIDATE_TWILIO_SIGNATURE")

    # =====================================================
    # ELEVENLABS TTS
    # =====================================================
    elevenlabs_api_key: str = Field(default="", alias="ELEVENLABS_API_KEY")
    elevenlabs_voice_en: str = Field(default="Rachel", alias="ELEVENLABS_VOICE_EN")
    elevenlabs_voice_es: str = Field(default="Antoni", alias="ELEVENLABS_VOICE_ES")
    elevenlabs_model: str = "eleven_multilingual_v2"
    elevenlabs_stability: float = 0.5  # 0-1, lower = more expressive
    elevenlabs_similarity_boost: float = 0.75  # 0-1, higher = more similar to original
    elevenlabs_output_format: str = "mp3_44100_128"
    tts_timeout_seconds: float = 5.0  # Per clip
    tts_turn_budget_seconds: float = 8.0  # All prompt audio of one webhook turn; the provider waits 15s

    # =====================================================
    # OPENAI
    # =====================================================
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_temperature: float = 0.3
    openai_max_tokens: int = 200

    # =====================================================
    # MICROSOFT GRAPH (Bookings)
    # =====================================================
    ms_bookings_tenant_id: str = Field(default="", alias="MS_BOOKINGS_TENANT_ID")
    ms_bookings_client_id: str = Field(default="", alias="MS_BOOKINGS_CLIENT_ID")
    ms_bookings_client_secret: str = Field(default="", alias="MS_BOOKINGS_CLIENT_SECRET")

    # =====================================================
    # SMS (Telnyx)
    # =====================================================
    telnyx_api_key: str = Field(default="", alias="TELNYX_API_KEY")
    telnyx_phone_number: str = Field(default="", alias="TELNYX_PHONE_NUMBER")

    # =====================================================
    # CONVERSATION
    # =====================================================
    default_country_code: str = "1"
    language_menu_timeout: int = 5
    speech_timeout_seconds: int = 10  # How long to wait for caller speech
    phone_timeout_seconds: int = 12
    menu_timeout_seconds: int = 8  # Keypad menus
    max_reprompts: int = 1  # Re-prompts before falling back
    slot_page_size: int = 3
    dial_timeout_seconds: int = 30
    voicemail_max_seconds: int = 180
    transcription_languages_str: str = Field(default="en", alias="TRANSCRIPTION_LANGUAGES")
    external_calendar_timeout: float = Field(default=4.0, alias="EXTERNAL_CALENDAR_TIMEOUT")

    # =====================================================
    # USAGE
    # =====================================================
    usage_min_balance: int = Field(default=1, alias="USAGE_MIN_BALANCE")

    # =====================================================
    # PROPERTIES
    # =====================================================
    @property
    def allowed_origins(self) -> List[str]:
        """Get allowed origins as a list"""
        return self._parse_list_string(self.allowed_origins_str) or [
            "http://localhost:3000", "http://localhost:8000"
        ]

    @property
    def transcription_languages(self) -> List[str]:
        """Languages the telephony provider can transcribe voicemail in"""
        return [code.lower() for code in self._parse_list_string(self.transcription_languages_str)]

    def _parse_list_string(self, raw: str) -> List[str]:
        """Parse a JSON list or a comma-separated string"""
        if not raw:
            return []

        # Try JSON parsing first (for backward compatibility)
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item) for item in parsed]
        except (json.JSONDecodeError, TypeError):
            pass

        # Fall back to comma-separated parsing
        items = [item.strip() for item in raw.split(',')]
        return [i for i in items if i]  # Filter out empty strings


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)"""
    return settings

"""
=====================================================
Voice Scheduling Platform - Voicemail Summarizer
=====================================================
One-line summaries of voicemail transcripts for the business owner.
"""

from typing import Optional

from loguru import logger

from services.conversation.language import LanguagePack
from services.llm.llm_base import LLMServiceBase, LLMRequest, ChatMessage, LLMRole
from services.llm.openai_service import create_openai_llm

SYSTEM_PROMPT = (
    "You summarize voicemail messages left for a small business. "
    "Reply with one or two short sentences in {language} stating who called, "
    "what they want and any callback details they gave. Do not invent details."
)

LANGUAGE_NAMES = {"en": "English", "es": "Spanish"}


class VoicemailSummarizer:
    """Summarize transcripts with an LLM, falling back to the raw text"""

    def __init__(self, llm: Optional[LLMServiceBase] = None):
        self.llm = llm

    async def summarize(self, transcript: str, caller: str, pack: LanguagePack) -> str:
        """
        Summarize a voicemail transcript

        Args:
            transcript: Provider transcription text
            caller: Caller phone number
            pack: Language pack of the call

        Returns:
            Summary text; never raises
        """
        transcript = (transcript or "").strip()
        fallback = pack.say("voicemail_fallback_summary", caller=caller, text=transcript)

        if not transcript or self.llm is None or not self.llm.is_available():
            return fallback

        language = LANGUAGE_NAMES.get(pack.language.value, "English")
        request = LLMRequest(messages=[
            ChatMessage(LLMRole.SYSTEM, SYSTEM_PROMPT.format(language=language)),
            ChatMessage(LLMRole.USER, f"Caller: {caller}\nTranscript: {transcript}"),
        ])

        try:
            response = await self.llm.chat(request)
        except Exception as e:
            logger.warning(f"Voicemail: Summary failed for {caller}, storing transcript: {e}")
            return fallback

        return response.content or fallback


# Global instance
_summarizer: Optional[VoicemailSummarizer] = None


def get_voicemail_summarizer() -> VoicemailSummarizer:
    """Get global voicemail summarizer instance"""
    global _summarizer
    if _summarizer is None:
        _summarizer = VoicemailSummarizer(create_openai_llm())
    return _summarizer

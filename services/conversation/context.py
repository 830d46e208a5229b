"""
=====================================================
Voice Scheduling Platform - Dialogue Context
=====================================================
Everything needed to resume a call on any server process. The context
travels in the callback URL between turns; nothing is kept in memory.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Optional, List

from services.conversation.language import Language


class Step(Enum):
    """Conversation step the next callback answers"""
    LANGUAGE_SELECT = "lang"
    GREETING = "greet"
    IVR_MENU = "ivr"
    INTENT_CLASSIFY = "intent"
    COLLECT_NAME = "name"
    COLLECT_PHONE = "phone"
    COLLECT_DATE = "date"
    OFFER_SLOTS = "offer"
    SELECT_SLOT = "select"
    CONFIRM_BOOKING = "confirm"
    VOICEMAIL = "vm"
    TRANSFER_DEPARTMENT = "xfer_dept"
    TRANSFER_SPECIALIST = "xfer_spec"
    TERMINAL_SUCCESS = "done"
    TERMINAL_FAILURE = "failed"
    TERMINAL_HANGUP = "hangup"


TERMINAL_STEPS = (Step.TERMINAL_SUCCESS, Step.TERMINAL_FAILURE, Step.TERMINAL_HANGUP)


@dataclass
class DialogueContext:
    """In-progress conversation state"""
    tenant_id: str
    call_id: str
    step: Step
    language: Optional[Language] = None
    business_name: str = ""
    caller_phone: str = ""
    attempts: int = 0  # re-prompts used in the current step
    prospect_name: Optional[str] = None
    prospect_phone: Optional[str] = None
    appointment_date: Optional[date] = None
    available_slots: List[str] = field(default_factory=list)  # snapshot, "HH:MM"
    offered_slots: List[str] = field(default_factory=list)
    slot_offset: int = 0
    has_more: bool = False
    date_attempts: int = 0  # dates tried with no availability
    availability_source: Optional[str] = None

    def advance(self, step: Step, **changes) -> "DialogueContext":
        """Copy moved to a new step, with the re-prompt counter reset"""
        return replace(self, step=step, attempts=0, **changes)

    def retry(self) -> "DialogueContext":
        """Copy for re-prompting the same step"""
        return replace(self, attempts=self.attempts + 1)

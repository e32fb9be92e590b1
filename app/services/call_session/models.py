"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.services.extraction.contact_info import ContactInfo
from app.services.persistence.base import CampaignConfig


class TurnRole(str, Enum):
    """Speaker of a conversation turn."""

    CALLER = "caller"
    AGENT = "agent"

    @property
    def message_role(self) -> str:
        """Role name used for persisted messages and LLM history."""
        return "user" if self is TurnRole.CALLER else "assistant"


class CallStatus(str, Enum):
    """Lifecycle status shared by live sessions and call records."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class ConversationTurn(BaseModel):
    """A single utterance; immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    text: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CallSession:
    """In-memory state of a live call, rebuildable from the call record."""

    def __init__(
        self,
        call_id: str,
        campaign_id: str,
        phone_number: str,
        contact_id: Optional[str] = None,
        twilio_call_sid: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ):
        self.call_id = call_id
        self.contact_id = contact_id
        self.campaign_id = campaign_id
        self.phone_number = phone_number
        self.twilio_call_sid = twilio_call_sid
        self.started_at = started_at or datetime.utcnow()
        self.status = CallStatus.ACTIVE
        self.campaign: Optional[CampaignConfig] = None  # loaded once per session
        self.contact_info = ContactInfo()
        self._turns: List[ConversationTurn] = []

    @property
    def turns(self) -> List[ConversationTurn]:
        """Snapshot of the turn history in chronological order."""
        return list(self._turns)

    @property
    def turn_count(self) -> int:
        return len(self._turns)

    def add_turn(self, role: TurnRole, text: str) -> ConversationTurn:
        """Append a turn to the history."""
        if self.status is not CallStatus.ACTIVE:
            raise RuntimeError(f"Call {self.call_id} is {self.status.value}; cannot add turns")
        turn = ConversationTurn(role=role, text=text)
        self._turns.append(turn)
        return turn

    def recent_history(self, window: int) -> List[dict]:
        """Last `window` turns in chat-message form."""
        recent = self._turns[-window:] if window > 0 else []
        return [{"role": t.role.message_role, "content": t.text} for t in recent]

    def get_transcript_text(self) -> str:
        """Full transcript as text."""
        return "\n".join(f"{t.role.message_role}: {t.text}" for t in self._turns)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        return max(0, int((now - self.started_at).total_seconds()))

    def to_event(self) -> dict:
        """Serializable snapshot for real-time broadcasts."""
        return {
            "id": self.call_id,
            "status": self.status.value,
            "conversationHistory": [
                {
                    "role": t.role.message_role,
                    "content": t.text,
                    "timestamp": t.timestamp.isoformat(),
                }
                for t in self._turns
            ],
            "duration": self.elapsed_seconds(),
        }

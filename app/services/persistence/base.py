"""Conversation store interface."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class VoiceSettings(BaseModel):
    """ElevenLabs voice tuning parameters."""

    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True

    @classmethod
    def from_config(cls, voice_config: Optional[dict]) -> "VoiceSettings":
        """Build settings from a stored campaign voice_config blob.

        Stored blobs use the dashboard's camelCase keys; missing or falsy
        values fall back to the defaults.
        """
        config = voice_config or {}
        defaults = cls()
        return cls(
            stability=config.get("stability") or defaults.stability,
            similarity_boost=config.get("similarityBoost") or defaults.similarity_boost,
            style=config.get("style") or defaults.style,
            use_speaker_boost=config.get("useSpeakerBoost", defaults.use_speaker_boost),
        )


class CampaignConfig(BaseModel):
    """Read-only snapshot of a campaign used for the duration of a call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    script: Optional[str] = None
    ai_prompt: Optional[str] = None
    intro_line: Optional[str] = None
    language: str = "en"
    openai_model: Optional[str] = None
    voice_id: Optional[str] = None
    voice_settings: VoiceSettings = Field(default_factory=VoiceSettings)
    elevenlabs_model: Optional[str] = None

    @property
    def goal_script(self) -> str:
        return self.script or self.ai_prompt or ""


class CallRecord(BaseModel):
    """Durable call record as seen by the orchestrator."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    contact_id: Optional[str] = None
    campaign_id: Optional[str] = None
    phone_number: str
    twilio_call_sid: Optional[str] = None
    status: str = "active"
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    extracted_whatsapp: Optional[str] = None
    extracted_email: Optional[str] = None
    conversation_summary: Optional[str] = None
    whatsapp_sent: bool = False


class StoredMessage(BaseModel):
    """Persisted conversation message."""

    model_config = ConfigDict(from_attributes=True)

    call_id: str
    role: str
    content: str
    created_at: datetime


class ConversationStore(ABC):
    """Abstract base class for the durable call record store."""

    @abstractmethod
    async def get_campaign(self, campaign_id: str) -> Optional[CampaignConfig]:
        """Get a campaign configuration snapshot."""
        pass

    @abstractmethod
    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        """Get a call record by ID."""
        pass

    @abstractmethod
    async def create_call(
        self, contact_id: Optional[str], campaign_id: str, phone_number: str
    ) -> CallRecord:
        """Create a new active call record."""
        pass

    @abstractmethod
    async def update_call(self, call_id: str, **fields: Any) -> Optional[CallRecord]:
        """Apply a partial update to a call record."""
        pass

    @abstractmethod
    async def append_message(self, call_id: str, role: str, content: str) -> None:
        """Append a conversation message to a call."""
        pass

    @abstractmethod
    async def get_messages(self, call_id: str) -> List[StoredMessage]:
        """Get the persisted messages of a call in order."""
        pass

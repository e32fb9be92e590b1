"""Call persistence service."""
from typing import Any, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Call, CallMessage, Campaign
from app.services.persistence.base import (
    CallRecord,
    CampaignConfig,
    ConversationStore,
    StoredMessage,
    VoiceSettings,
)

# Columns the orchestrator is allowed to change on an existing call
UPDATABLE_CALL_FIELDS = frozenset(
    {
        "twilio_call_sid",
        "status",
        "end_time",
        "duration",
        "extracted_whatsapp",
        "extracted_email",
        "conversation_summary",
        "whatsapp_sent",
    }
)


class SqlConversationStore(ConversationStore):
    """SQLAlchemy-backed conversation store.

    Opens a short-lived session per operation, so it is safe to share across
    requests and background completion tasks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_campaign(self, campaign_id: str) -> Optional[CampaignConfig]:
        """Get campaign snapshot by ID."""
        async with self.session_factory() as db:
            campaign = await db.get(Campaign, campaign_id)
            if not campaign:
                return None
            return CampaignConfig(
                id=campaign.id,
                name=campaign.name,
                script=campaign.script,
                ai_prompt=campaign.ai_prompt,
                intro_line=campaign.intro_line,
                language=campaign.language or "en",
                openai_model=campaign.openai_model,
                voice_id=campaign.voice_id,
                voice_settings=VoiceSettings.from_config(campaign.voice_config),
                elevenlabs_model=campaign.elevenlabs_model,
            )

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        """Get call by ID."""
        async with self.session_factory() as db:
            call = await db.get(Call, call_id)
            return CallRecord.model_validate(call) if call else None

    async def create_call(
        self, contact_id: Optional[str], campaign_id: str, phone_number: str
    ) -> CallRecord:
        """Create a new active call record."""
        async with self.session_factory() as db:
            call = Call(
                contact_id=contact_id,
                campaign_id=campaign_id,
                phone_number=phone_number,
                status="active",
            )
            db.add(call)
            await db.commit()
            await db.refresh(call)
            return CallRecord.model_validate(call)

    async def update_call(self, call_id: str, **fields: Any) -> Optional[CallRecord]:
        """Update the given columns of a call."""
        unknown = set(fields) - UPDATABLE_CALL_FIELDS
        if unknown:
            raise ValueError(f"Cannot update call fields: {sorted(unknown)}")

        async with self.session_factory() as db:
            call = await db.get(Call, call_id)
            if not call:
                return None
            for name, value in fields.items():
                setattr(call, name, value)
            await db.commit()
            await db.refresh(call)
            return CallRecord.model_validate(call)

    async def append_message(self, call_id: str, role: str, content: str) -> None:
        """Persist one conversation message."""
        async with self.session_factory() as db:
            db.add(CallMessage(call_id=call_id, role=role, content=content))
            await db.commit()

    async def get_messages(self, call_id: str) -> List[StoredMessage]:
        """Get messages for a call ordered by insertion."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CallMessage)
                .where(CallMessage.call_id == call_id)
                .order_by(CallMessage.id)
            )
            return [StoredMessage.model_validate(m) for m in result.scalars().all()]

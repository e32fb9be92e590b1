"""Shared test fixtures and configuration."""
import asyncio
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("ELEVENLABS_API_KEY", "test-elevenlabs-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+1234567890")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BASE_URL", "")

from app.core.exceptions import GenerationError, SynthesisError
from app.db.models import Base
from app.services.call_session.failures import LoggingFailureObserver
from app.services.call_session.orchestrator import ConversationOrchestrator
from app.services.call_session.registry import SessionRegistry
from app.services.call_session.scheduler import DeferredTaskScheduler
from app.services.persistence.base import (
    CallRecord,
    CampaignConfig,
    ConversationStore,
    StoredMessage,
)
from app.services.speech.audio_store import AudioStore
from app.services.telephony.twilio_service import CallInitiationResult, MessageResult


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_BASE_URL = "https://agent.test"
DEFAULT_REPLY = "Thanks! Could you share your WhatsApp number and email?"


class InMemoryConversationStore(ConversationStore):
    """Dict-backed store mirroring SqlConversationStore behaviour."""

    def __init__(self):
        self.campaigns: Dict[str, CampaignConfig] = {}
        self.calls: Dict[str, CallRecord] = {}
        self.messages: List[StoredMessage] = []
        self.update_log: List[Dict[str, Any]] = []
        self.fail_writes = False
        self._next_id = 0

    def add_campaign(self, campaign: CampaignConfig) -> CampaignConfig:
        self.campaigns[campaign.id] = campaign
        return campaign

    def add_call(self, call_id: str, campaign_id: str, status: str = "active", **fields) -> CallRecord:
        record = CallRecord(
            id=call_id,
            campaign_id=campaign_id,
            phone_number=fields.pop("phone_number", "+15550001111"),
            status=status,
            start_time=fields.pop("start_time", datetime.utcnow()),
            **fields,
        )
        self.calls[call_id] = record
        return record

    async def get_campaign(self, campaign_id: str) -> Optional[CampaignConfig]:
        return self.campaigns.get(campaign_id)

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        return self.calls.get(call_id)

    async def create_call(self, contact_id, campaign_id, phone_number) -> CallRecord:
        self._next_id += 1
        record = CallRecord(
            id=f"call-{self._next_id}",
            contact_id=contact_id,
            campaign_id=campaign_id,
            phone_number=phone_number,
            start_time=datetime.utcnow(),
        )
        self.calls[record.id] = record
        return record

    async def update_call(self, call_id: str, **fields: Any) -> Optional[CallRecord]:
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        record = self.calls.get(call_id)
        if record is None:
            return None
        self.update_log.append({"call_id": call_id, **fields})
        self.calls[call_id] = record.model_copy(update=fields)
        return self.calls[call_id]

    async def append_message(self, call_id: str, role: str, content: str) -> None:
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        self.messages.append(
            StoredMessage(call_id=call_id, role=role, content=content, created_at=datetime.utcnow())
        )

    async def get_messages(self, call_id: str) -> List[StoredMessage]:
        return [m for m in self.messages if m.call_id == call_id]


class FakeAgentService:
    """Scripted replies instead of OpenAI."""

    def __init__(self):
        self.replies: List[str] = []
        self.fail_generation = False
        self.fail_summary = False
        self.generate_calls: List[Dict[str, Any]] = []
        self.summary_calls = 0
        self.delay = 0.0

    async def generate_response(self, utterance, goal_script, recent_history, contact_info=None, model=None):
        self.generate_calls.append(
            {
                "utterance": utterance,
                "history": list(recent_history),
                "contact_info": contact_info,
                "model": model,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_generation:
            raise GenerationError("model unavailable")
        return self.replies.pop(0) if self.replies else DEFAULT_REPLY

    async def summarize(self, conversation_text, model=None):
        self.summary_calls += 1
        if self.fail_summary:
            raise GenerationError("summary unavailable")
        return "Caller shared contact details."


class FakeTextToSpeechService:
    def __init__(self):
        self.fail = False
        self.requests: List[Dict[str, Any]] = []

    async def synthesize_speech(self, text, voice_id=None, voice_settings=None, model=None):
        self.requests.append({"text": text, "voice_id": voice_id, "model": model})
        if self.fail:
            raise SynthesisError("synthesizer down")
        return b"ID3-fake-mp3"

    async def aclose(self):
        pass


class FakeTwilioService:
    def __init__(self):
        self.call_result = CallInitiationResult(success=True, twilio_call_sid="CA123")
        self.message_result = MessageResult(success=True, message_sid="SM123")
        self.placed_calls: List[Dict[str, str]] = []
        self.sent_messages: List[Dict[str, str]] = []

    async def initiate_call(self, phone_number, answer_url, status_callback):
        self.placed_calls.append(
            {"to": phone_number, "answer_url": answer_url, "status_callback": status_callback}
        )
        return self.call_result

    async def send_whatsapp_message(self, destination, text):
        self.sent_messages.append({"to": destination, "body": text})
        return self.message_result


async def instant_sleep(delay: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def campaign():
    return CampaignConfig(
        id="campaign-1",
        name="Lab partnerships",
        script="Introduce LabsCheck and ask about partnering.",
        intro_line="Hi, this is Riya from LabsCheck.",
        language="en",
        openai_model="gpt-4o-mini",
        voice_id="voice-123",
        elevenlabs_model="eleven_turbo_v2",
    )


@pytest.fixture
def store(campaign):
    memory_store = InMemoryConversationStore()
    memory_store.add_campaign(campaign)
    return memory_store


@pytest.fixture
def agent_service():
    return FakeAgentService()


@pytest.fixture
def tts_service():
    return FakeTextToSpeechService()


@pytest.fixture
def twilio_service():
    return FakeTwilioService()


@pytest.fixture
def audio_store(tmp_path):
    return AudioStore(str(tmp_path / "audio"), base_url=TEST_BASE_URL)


@pytest.fixture
def observer():
    return LoggingFailureObserver()


@pytest.fixture
def orchestrator(store, agent_service, tts_service, audio_store, twilio_service, observer):
    """Orchestrator wired to fakes; deferred completion runs without waiting."""
    return ConversationOrchestrator(
        store=store,
        agent_service=agent_service,
        tts_service=tts_service,
        audio_store=audio_store,
        twilio_service=twilio_service,
        registry=SessionRegistry(store),
        scheduler=DeferredTaskScheduler(sleep=instant_sleep),
        observer=observer,
        history_window=4,
        max_turns=8,
        completion_delay=1.0,
    )


@pytest.fixture
def active_call(store, campaign):
    """An answered call with a durable active record."""
    return store.add_call("call-abc", campaign.id)


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

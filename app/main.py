"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.logging import setup_logging
from app.db.database import AsyncSessionLocal, engine, init_db
from app.api import calls, health
from app.api.webhooks import voice
from app.services.agent.agent import AgentService
from app.services.call_session.orchestrator import ConversationOrchestrator
from app.services.persistence.calls import SqlConversationStore
from app.services.speech.audio_store import AudioStore
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService
from app.services.telephony.twilio_service import TwilioService


def build_orchestrator(audio_store: AudioStore) -> ConversationOrchestrator:
    """Wire the orchestrator with the production services."""
    return ConversationOrchestrator(
        store=SqlConversationStore(AsyncSessionLocal),
        agent_service=AgentService(),
        tts_service=TextToSpeechService(),
        audio_store=audio_store,
        twilio_service=TwilioService(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    audio_store = AudioStore(settings.audio_dir, settings.base_url)
    app.state.audio_store = audio_store
    app.state.stt_service = SpeechToTextService()
    app.state.orchestrator = build_orchestrator(audio_store)
    yield
    # Shutdown
    await app.state.orchestrator.shutdown()
    await app.state.orchestrator.tts_service.aclose()
    await engine.dispose()


app = FastAPI(
    title="AI Voice Agent",
    description="AI Voice Agent for Outbound Lead Calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(calls.router, tags=["calls"])

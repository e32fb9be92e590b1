"""FastAPI dependencies."""
from fastapi import Request

from app.core.config import settings
from app.services.call_session.orchestrator import ConversationOrchestrator
from app.services.speech.audio_store import AudioStore
from app.services.speech.stt import SpeechToTextService


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """Get the conversation orchestrator created at startup."""
    return request.app.state.orchestrator


def get_stt_service(request: Request) -> SpeechToTextService:
    """Get speech-to-text service instance."""
    return request.app.state.stt_service


def get_audio_store(request: Request) -> AudioStore:
    """Get the synthesized audio store."""
    return request.app.state.audio_store


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g., behind a tunnel),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')
    return str(request.base_url).rstrip('/')

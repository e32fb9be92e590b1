"""Outbound call API, live call events and synthesized audio."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from pydantic import BaseModel

from app.core.config import settings
from app.core.dependencies import get_audio_store, get_base_url, get_orchestrator
from app.services.call_session.orchestrator import ConversationOrchestrator, StartCallResult
from app.services.speech.audio_store import AudioStore

router = APIRouter()
logger = logging.getLogger(__name__)


class StartCallRequest(BaseModel):
    """Start call request body."""
    contact_id: Optional[str] = None
    campaign_id: str
    phone_number: str


class ActiveCallResponse(BaseModel):
    """Live call snapshot."""
    id: str
    status: str
    conversationHistory: List[dict] = []
    duration: int


@router.post("/api/calls", response_model=StartCallResult)
async def start_call(
    body: StartCallRequest,
    request: Request,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Place an outbound campaign call."""
    logger.info(
        f"[START CALL] Request received - Campaign: {body.campaign_id}, Phone: {body.phone_number}"
    )
    result = await orchestrator.start_call(
        body.contact_id, body.campaign_id, body.phone_number, base_url=get_base_url(request)
    )
    if not result.success:
        status_code = 404 if result.error == "Campaign not found" else 502
        raise HTTPException(status_code=status_code, detail=result.error or "Failed to start call")
    return result


@router.get("/api/calls/active", response_model=List[ActiveCallResponse])
async def get_active_calls(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """List calls currently in progress."""
    return orchestrator.active_calls()


@router.get("/audio/{filename}")
async def serve_audio(
    filename: str,
    audio_store: AudioStore = Depends(get_audio_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Serve synthesized audio to Twilio, then clean it up after a while."""
    path = audio_store.path_for(filename)
    if path is None:
        logger.warning(f"[AUDIO] Audio file not found: {filename}")
        raise HTTPException(status_code=404, detail="Audio file not found")

    orchestrator.scheduler.schedule(
        settings.audio_retention_seconds,
        lambda: _delete_audio(audio_store, filename),
        name=f"delete-audio-{filename}",
    )
    return FileResponse(path, media_type="audio/mpeg", headers={"Cache-Control": "no-cache"})


async def _delete_audio(audio_store: AudioStore, filename: str) -> None:
    audio_store.delete(filename)


@router.websocket("/ws")
async def call_events(websocket: WebSocket):
    """Stream call events to dashboard clients."""
    broadcaster = websocket.app.state.orchestrator.broadcaster
    await broadcaster.connect(websocket)
    try:
        while True:
            # Clients only listen; inbound frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        broadcaster.disconnect(websocket)

"""Twilio voice webhook endpoints."""
import logging
from typing import Optional
from fastapi import APIRouter, Request, Form, Depends, Query
from fastapi.responses import Response

from app.core.dependencies import get_base_url, get_orchestrator, get_stt_service
from app.core.exceptions import TranscriptionError
from app.services.agent.constants import GENERIC_CLOSING_LINE
from app.services.call_session.orchestrator import ConversationOrchestrator
from app.services.speech.stt import SpeechToTextService
from app.services.telephony.twiml import Intent, build_markup

router = APIRouter()
logger = logging.getLogger(__name__)

FAILED_CALL_STATUSES = {"failed", "busy", "no-answer", "canceled"}


def twiml_response(markup: str) -> Response:
    return Response(content=markup, media_type="application/xml")


def hangup_response() -> Response:
    """Valid TwiML that closes the call; used when a handler blows up."""
    return twiml_response(build_markup(Intent.END, text=GENERIC_CLOSING_LINE))


async def _turn_or_reprompt(
    orchestrator: ConversationOrchestrator,
    call_id: str,
    utterance: str,
    base_url: str,
) -> Response:
    if not utterance:
        logger.info(f"[PROCESS SPEECH] No usable speech - CallId: {call_id}, re-prompting")
        directive = await orchestrator.reprompt(call_id, base_url=base_url)
    else:
        directive = await orchestrator.process_turn(call_id, utterance, base_url=base_url)
    return twiml_response(directive.markup)


async def _transcribe(stt_service: SpeechToTextService, call_id: str, recording_url: str) -> str:
    try:
        return stt_service.validate(await stt_service.transcribe_recording(recording_url))
    except TranscriptionError as e:
        logger.warning(f"[RECORDING] Transcription failed - CallId: {call_id}, Error: {str(e)}")
        return ""


@router.post("/voice/answer")
async def handle_answer(
    request: Request,
    callId: str = Query(...),
    campaignId: str = Query(...),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """
    Handle an answered outbound call.

    Twilio requests this URL when the callee picks up; the response plays the
    campaign intro and starts listening.
    """
    logger.info(f"[ANSWER] Call answered - CallId: {callId}, CampaignId: {campaignId}")
    try:
        directive = await orchestrator.intro(callId, campaignId, base_url=get_base_url(request))
        return twiml_response(directive.markup)
    except Exception as e:
        logger.error(
            f"[ANSWER] Error building intro - CallId: {callId}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return hangup_response()


@router.post("/voice/{call_id}/process-speech")
async def handle_process_speech(
    request: Request,
    call_id: str,
    SpeechResult: Optional[str] = Form(None),
    UnstableSpeechResult: Optional[str] = Form(None),
    Digits: Optional[str] = Form(None),
    RecordingUrl: Optional[str] = Form(None),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    stt_service: SpeechToTextService = Depends(get_stt_service),
):
    """
    Handle gathered speech from Twilio.

    This endpoint is called after Twilio collects caller speech.
    """
    logger.info(
        f"[PROCESS SPEECH] Received speech input - CallId: {call_id}, "
        f"SpeechResult length: {len(SpeechResult) if SpeechResult else 0}"
    )
    try:
        utterance = stt_service.validate(
            stt_service.normalize(SpeechResult, UnstableSpeechResult, Digits)
        )
        if not utterance and RecordingUrl:
            utterance = await _transcribe(stt_service, call_id, RecordingUrl)
        return await _turn_or_reprompt(orchestrator, call_id, utterance, get_base_url(request))
    except Exception as e:
        logger.error(
            f"[PROCESS SPEECH] Error processing speech input - CallId: {call_id}, "
            f"SpeechResult: '{SpeechResult[:100] if SpeechResult else 'None'}', "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return hangup_response()


@router.post("/voice/recording-complete")
async def handle_recording_complete(
    request: Request,
    callId: str = Query(...),
    RecordingUrl: Optional[str] = Form(None),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    stt_service: SpeechToTextService = Depends(get_stt_service),
):
    """Transcribe the fallback recording taken when the gather heard nothing."""
    logger.info(f"[RECORDING] Recording complete - CallId: {callId}, Url: {RecordingUrl}")
    try:
        utterance = await _transcribe(stt_service, callId, RecordingUrl) if RecordingUrl else ""
        return await _turn_or_reprompt(orchestrator, callId, utterance, get_base_url(request))
    except Exception as e:
        logger.error(
            f"[RECORDING] Error processing recording - CallId: {callId}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return hangup_response()


@router.post("/voice/status")
async def handle_call_status(
    callId: str = Query(...),
    CallStatus: str = Form(...),
    CallDuration: Optional[int] = Form(None),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """
    Handle call status updates from Twilio.

    This endpoint is called when call status changes (completed, failed, etc.).
    """
    logger.info(f"[CALL STATUS] Received status update - CallId: {callId}, CallStatus: {CallStatus}")
    try:
        if CallStatus == "completed":
            await orchestrator.complete(callId, duration=CallDuration)
        elif CallStatus in FAILED_CALL_STATUSES:
            await orchestrator.fail(callId, duration=CallDuration)
        else:
            logger.debug(
                f"[CALL STATUS] No action needed - CallId: {callId}, CallStatus: {CallStatus}"
            )
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallId: {callId}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
    # Always OK so Twilio does not retry
    return Response(content="OK", media_type="text/plain")

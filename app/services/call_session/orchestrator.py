"""Conversation orchestrator for outbound calls."""
import asyncio
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import MessagingError, SynthesisError
from app.services.agent.agent import AgentService
from app.services.agent.constants import (
    GENERATION_APOLOGY_LINE,
    GENERIC_CLOSING_LINE,
    INTRO_APOLOGY_LINE,
    REPROMPT_LINE,
    SUMMARY_FALLBACK,
    SYNTHESIS_APOLOGY_LINE,
    TECHNICAL_ISSUE_LINE,
)
from app.services.agent.policy import should_end_call
from app.services.call_session.failures import (
    FailureObserver,
    LoggingFailureObserver,
    StepFailure,
)
from app.services.call_session.models import CallSession, CallStatus, TurnRole
from app.services.call_session.registry import SessionRegistry
from app.services.call_session.scheduler import DeferredTaskScheduler
from app.services.extraction.contact_info import (
    ContactInfo,
    extract_contact_info,
    extract_from_transcript,
)
from app.services.notifications.broadcaster import CallEventBroadcaster
from app.services.persistence.base import CallRecord, CampaignConfig, ConversationStore
from app.services.speech.audio_store import AudioStore
from app.services.speech.tts import TextToSpeechService
from app.services.telephony.twilio_service import TwilioService
from app.services.telephony.twiml import ControlDirective, end_directive, listen_directive

logger = logging.getLogger(__name__)


class StartCallResult(BaseModel):
    """Outcome of starting an outbound call."""

    success: bool
    call_id: Optional[str] = None
    error: Optional[str] = None


class TurnTimings:
    """Wall-clock duration of each pipeline step within one request."""

    def __init__(self):
        self._start = time.perf_counter()
        self.durations_ms: Dict[str, int] = {}

    @contextmanager
    def measure(self, step: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            self.durations_ms[step] = int((time.perf_counter() - started) * 1000)

    def summary(self) -> str:
        parts = [f"{step}: {ms}ms" for step, ms in self.durations_ms.items()]
        parts.append(f"total: {int((time.perf_counter() - self._start) * 1000)}ms")
        return ", ".join(parts)


def contact_info_from_record(record: Optional[CallRecord]) -> ContactInfo:
    if record is None:
        return ContactInfo()
    return ContactInfo(whatsapp=record.extracted_whatsapp, email=record.extracted_email)


class ConversationOrchestrator:
    """
    Drives each call from intro to follow-up across stateless webhooks.

    Every webhook resolves the live session from the registry (rebuilding it
    from the store after a restart), runs one step of the
    transcribe -> generate -> speak pipeline, and answers with TwiML. Failures
    inside a step are contained and turned into a graceful directive; the
    provider always receives valid markup.
    """

    def __init__(
        self,
        store: ConversationStore,
        agent_service: AgentService,
        tts_service: TextToSpeechService,
        audio_store: AudioStore,
        twilio_service: TwilioService,
        registry: Optional[SessionRegistry] = None,
        scheduler: Optional[DeferredTaskScheduler] = None,
        broadcaster: Optional[CallEventBroadcaster] = None,
        observer: Optional[FailureObserver] = None,
        history_window: int = settings.history_window,
        max_turns: int = settings.max_conversation_turns,
        completion_delay: float = settings.completion_delay_seconds,
    ):
        self.store = store
        self.agent_service = agent_service
        self.tts_service = tts_service
        self.audio_store = audio_store
        self.twilio_service = twilio_service
        self.registry = registry or SessionRegistry(store)
        self.scheduler = scheduler or DeferredTaskScheduler()
        self.broadcaster = broadcaster or CallEventBroadcaster()
        self.observer = observer or LoggingFailureObserver()
        self.history_window = history_window
        self.max_turns = max_turns
        self.completion_delay = completion_delay

    async def start_call(
        self,
        contact_id: Optional[str],
        campaign_id: str,
        phone_number: str,
        base_url: str = "",
    ) -> StartCallResult:
        """Create the call record, place the call and start tracking it."""
        try:
            campaign = await self._get_campaign(campaign_id)
            if not campaign:
                return StartCallResult(success=False, error="Campaign not found")

            record = await asyncio.wait_for(
                self.store.create_call(contact_id, campaign_id, phone_number),
                timeout=settings.persistence_timeout_seconds,
            )
            root = self._root_url(base_url)
            result = await self.twilio_service.initiate_call(
                phone_number,
                answer_url=f"{root}/webhooks/voice/answer?callId={record.id}&campaignId={campaign_id}",
                status_callback=f"{root}/webhooks/voice/status?callId={record.id}",
            )

            if not result.success:
                await self._contained(
                    record.id, "mark_failed", self.store.update_call(record.id, status="failed")
                )
                return StartCallResult(success=False, call_id=record.id, error=result.error)

            await self._contained(
                record.id,
                "persist_call_sid",
                self.store.update_call(record.id, twilio_call_sid=result.twilio_call_sid),
            )

            session = CallSession(
                call_id=record.id,
                contact_id=contact_id,
                campaign_id=campaign_id,
                phone_number=phone_number,
                twilio_call_sid=result.twilio_call_sid,
            )
            session.campaign = campaign
            self.registry.register(session)
            logger.info(f"[START CALL] Call {record.id} placed to {phone_number}")
            await self._broadcast({"type": "call_started", "callId": record.id, "phoneNumber": phone_number})
            return StartCallResult(success=True, call_id=record.id)

        except Exception as e:
            logger.error(
                f"[START CALL] Error starting call - Campaign: {campaign_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return StartCallResult(success=False, error=str(e) or type(e).__name__)

    async def intro(self, call_id: str, campaign_id: str, base_url: str = "") -> ControlDirective:
        """Answer-webhook markup: play the campaign intro and start listening."""
        try:
            record = await self._get_call(call_id)
            session = self.registry.ensure_tracked(record) if record else None

            campaign = await self._get_campaign(campaign_id)
            if not campaign:
                logger.warning(f"[INTRO] Campaign {campaign_id} not found - CallId: {call_id}")
                return self._closing_directive()
            if session is not None and session.campaign is None:
                session.campaign = campaign

            intro_text = campaign.intro_line or settings.default_intro_line
            try:
                audio_url = await self._synthesize(call_id, campaign, intro_text, base_url, prefix="intro")
            except Exception as e:
                self.observer.record(StepFailure(call_id, "synthesize_intro", e))
                return end_directive(
                    text=INTRO_APOLOGY_LINE, **self._markup_options(campaign, thinking_pause=False)
                )

            logger.info(f"[INTRO] Playing intro for call {call_id}: '{intro_text}'")
            return listen_directive(
                reply_text=intro_text,
                audio_url=audio_url,
                action_url=self._gather_url(call_id, base_url),
                recording_callback=self._recording_url(call_id, base_url),
                **self._markup_options(campaign),
            )

        except Exception as e:
            logger.error(
                f"[INTRO] Error building intro - CallId: {call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return self._closing_directive()

    async def reprompt(self, call_id: str, base_url: str = "") -> ControlDirective:
        """Keep listening after a gather produced no usable speech; close a finished call."""
        if self.registry.is_ended(call_id):
            return self._closing_directive()

        campaign = None
        try:
            session = self.registry.get(call_id)
            if session is not None and session.campaign is not None:
                campaign = session.campaign
            else:
                record = await self._get_call(call_id)
                if record is not None and record.status != CallStatus.ACTIVE.value:
                    return self._closing_directive()
                if record and record.campaign_id:
                    campaign = await self._get_campaign(record.campaign_id)
        except Exception as e:
            self.observer.record(StepFailure(call_id, "load_campaign", e))

        return listen_directive(
            text=REPROMPT_LINE,
            action_url=self._gather_url(call_id, base_url),
            **self._markup_options(campaign),
        )

    async def process_turn(
        self, call_id: str, utterance: str, base_url: str = ""
    ) -> ControlDirective:
        """
        Process one caller utterance and return the call-control directive.

        Turns for the same call are serialized; different calls run freely.

        Args:
            call_id: Call record ID
            utterance: Normalized caller speech
            base_url: Public base URL for callbacks; settings.base_url if empty

        Returns:
            ControlDirective whose markup continues or ends the call
        """
        timings = TurnTimings()
        async with self.registry.lock(call_id):
            try:
                directive = await self._process_turn(call_id, utterance, base_url, timings)
            except Exception as e:
                logger.error(
                    f"[PROCESS TURN] Unexpected error - CallId: {call_id}, "
                    f"Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
                directive = self._closing_directive(TECHNICAL_ISSUE_LINE)
                self._schedule_completion(call_id)

        logger.info(f"[CALL TIMINGS] CallId: {call_id} | {timings.summary()}")
        return directive

    async def _process_turn(
        self, call_id: str, utterance: str, base_url: str, timings: TurnTimings
    ) -> ControlDirective:
        with timings.measure("resolve"):
            session = await self.registry.resolve(call_id)
        if session is None:
            return self._closing_directive()

        with timings.measure("campaign"):
            campaign = await self._load_campaign(session)
        if campaign is None:
            logger.warning(f"[PROCESS TURN] Campaign missing for call {call_id}, ending call")
            return self._closing_directive()

        session.add_turn(TurnRole.CALLER, utterance)
        logger.info(f"[PROCESS TURN] CallId: {call_id}, Caller: '{utterance[:200]}'")

        with timings.measure("contact_info"):
            contact_info = await self._merge_contact_info(session, utterance)

        generation_failed = False
        with timings.measure("generate"):
            try:
                reply = await self.agent_service.generate_response(
                    utterance,
                    campaign.goal_script,
                    session.recent_history(self.history_window),
                    contact_info,
                    campaign.openai_model,
                )
            except Exception as e:
                self.observer.record(StepFailure(call_id, "generate", e))
                reply = GENERATION_APOLOGY_LINE
                generation_failed = True

        session.add_turn(TurnRole.AGENT, reply)

        with timings.measure("persist_messages"):
            await self._contained(call_id, "persist_messages", self._persist_exchange(call_id, utterance, reply))

        end_call = generation_failed or should_end_call(
            contact_info, session.turn_count, reply, utterance, self.max_turns
        )

        with timings.measure("synthesize"):
            try:
                audio_url = await self._synthesize(call_id, campaign, reply, base_url)
            except Exception as e:
                # Keep the campaign voice: no alternate voice path, end the call instead
                self.observer.record(StepFailure(call_id, "synthesize", e))
                audio_url = None

        options = self._markup_options(campaign)
        if audio_url is None:
            directive = end_directive(
                reply_text=reply,
                text=SYNTHESIS_APOLOGY_LINE,
                **self._markup_options(campaign, thinking_pause=False),
            )
        elif end_call:
            directive = end_directive(reply_text=reply, audio_url=audio_url, **options)
        else:
            directive = listen_directive(
                reply_text=reply,
                audio_url=audio_url,
                action_url=self._gather_url(call_id, base_url),
                recording_callback=self._recording_url(call_id, base_url),
                **options,
            )

        if directive.ends_call:
            logger.info(f"[PROCESS TURN] Ending call {call_id} after {session.turn_count} turns")
            self._schedule_completion(call_id)

        await self._broadcast({"type": "call_update", "call": session.to_event()})
        return directive

    async def _load_campaign(self, session: CallSession) -> Optional[CampaignConfig]:
        if session.campaign is None and session.campaign_id:
            session.campaign = await self._get_campaign(session.campaign_id)
        return session.campaign

    async def _get_call(self, call_id: str) -> Optional[CallRecord]:
        return await asyncio.wait_for(
            self.store.get_call(call_id), timeout=settings.persistence_timeout_seconds
        )

    async def _get_campaign(self, campaign_id: str) -> Optional[CampaignConfig]:
        return await asyncio.wait_for(
            self.store.get_campaign(campaign_id), timeout=settings.persistence_timeout_seconds
        )

    async def _merge_contact_info(self, session: CallSession, utterance: str) -> ContactInfo:
        """Merge persisted, known and newly spoken contact details (first found wins)."""
        found = extract_contact_info(utterance)

        persisted = ContactInfo()
        try:
            record = await self._get_call(session.call_id)
            persisted = contact_info_from_record(record)
        except Exception as e:
            self.observer.record(StepFailure(session.call_id, "load_contact_info", e))

        previous = persisted.merge(session.contact_info)
        merged = previous.merge(found)
        session.contact_info = merged

        if merged != previous:
            await self._contained(
                session.call_id,
                "persist_fields",
                self.store.update_call(
                    session.call_id,
                    extracted_whatsapp=merged.whatsapp,
                    extracted_email=merged.email,
                ),
            )
            logger.info(
                f"[PROCESS TURN] Updated contact info - CallId: {session.call_id}, "
                f"WhatsApp: {merged.whatsapp}, Email: {merged.email}"
            )
        return merged

    async def _persist_exchange(self, call_id: str, utterance: str, reply: str) -> None:
        await self.store.append_message(call_id, TurnRole.CALLER.message_role, utterance)
        await self.store.append_message(call_id, TurnRole.AGENT.message_role, reply)

    async def _synthesize(
        self,
        call_id: str,
        campaign: CampaignConfig,
        text: str,
        base_url: str = "",
        prefix: str = "response",
    ) -> str:
        audio = await self.tts_service.synthesize_speech(
            text,
            voice_id=campaign.voice_id,
            voice_settings=campaign.voice_settings,
            model=campaign.elevenlabs_model,
        )
        if not audio:
            raise SynthesisError("Synthesizer returned no audio")
        url = self.audio_store.save(call_id, audio, prefix=prefix)
        if url.startswith("/"):
            url = f"{self._root_url(base_url)}{url}"
        return url

    async def complete(self, call_id: str, duration: Optional[int] = None) -> None:
        """
        Finish a call: persist its outcome, summarize it and send the follow-up.

        Does nothing when the call is not tracked, so the termination path and
        the provider status callback can both invoke it safely.
        """
        async with self.registry.lock(call_id):
            session = self.registry.pop(call_id)
        if session is None:
            logger.debug(f"[COMPLETE] Call {call_id} not active, nothing to do")
            return

        session.status = CallStatus.COMPLETED
        end_time = datetime.utcnow()
        if duration is None:
            duration = session.elapsed_seconds(end_time)

        marked = await self._contained(
            call_id,
            "mark_completed",
            self.store.update_call(call_id, status=CallStatus.COMPLETED.value, end_time=end_time, duration=duration),
        )
        if marked:
            self.registry.forget_ended(call_id)

        if session.turns:
            summary = await self._generate_summary(session)
            await self._contained(
                call_id, "persist_summary", self.store.update_call(call_id, conversation_summary=summary)
            )

        await self._post_call_actions(session)
        await self._broadcast({"type": "call_ended", "callId": call_id, "status": session.status.value})
        logger.info(f"[COMPLETE] Call {call_id} completed successfully ({duration}s)")

    async def fail(self, call_id: str, duration: Optional[int] = None) -> None:
        """Record a call the provider could not connect or that dropped."""
        async with self.registry.lock(call_id):
            session = self.registry.pop(call_id)
        if session is None:
            return

        session.status = CallStatus.FAILED
        end_time = datetime.utcnow()
        marked = await self._contained(
            call_id,
            "mark_failed",
            self.store.update_call(
                call_id,
                status=CallStatus.FAILED.value,
                end_time=end_time,
                duration=duration if duration is not None else session.elapsed_seconds(end_time),
            ),
        )
        if marked:
            self.registry.forget_ended(call_id)
        await self._broadcast({"type": "call_ended", "callId": call_id, "status": session.status.value})
        logger.info(f"[COMPLETE] Call {call_id} marked failed")

    async def _generate_summary(self, session: CallSession) -> str:
        model = session.campaign.openai_model if session.campaign else None
        try:
            return await self.agent_service.summarize(session.get_transcript_text(), model)
        except Exception as e:
            self.observer.record(StepFailure(session.call_id, "summary", e))
            return SUMMARY_FALLBACK

    async def _post_call_actions(self, session: CallSession) -> None:
        """Extract contact details from the whole conversation and send the follow-up."""
        call_id = session.call_id
        found = extract_from_transcript(turn.text for turn in session.turns)

        record = None
        try:
            record = await self._get_call(call_id)
        except Exception as e:
            self.observer.record(StepFailure(call_id, "load_contact_info", e))

        persisted = contact_info_from_record(record)
        merged = persisted.merge(session.contact_info).merge(found)
        if merged != persisted:
            await self._contained(
                call_id,
                "persist_fields",
                self.store.update_call(
                    call_id, extracted_whatsapp=merged.whatsapp, extracted_email=merged.email
                ),
            )

        if not merged.whatsapp or (record is not None and record.whatsapp_sent):
            return

        result = await self.twilio_service.send_whatsapp_message(
            merged.whatsapp, settings.follow_up_message
        )
        if result.success:
            await self._contained(
                call_id, "persist_follow_up", self.store.update_call(call_id, whatsapp_sent=True)
            )
        else:
            self.observer.record(
                StepFailure(call_id, "follow_up", MessagingError(result.error or "send failed"))
            )

    def active_calls(self) -> List[Dict[str, Any]]:
        return [session.to_event() for session in self.registry.active_sessions()]

    def _schedule_completion(self, call_id: str) -> None:
        # Give the final audio time to play before the provider tears the call down
        self.scheduler.schedule(
            self.completion_delay,
            lambda: self.complete(call_id),
            name=f"complete-{call_id}",
        )

    async def _contained(self, call_id: str, step: str, operation: Awaitable[Any]) -> bool:
        """Await a best-effort store write; failures are observed, not raised."""
        try:
            await asyncio.wait_for(operation, timeout=settings.persistence_timeout_seconds)
            return True
        except Exception as e:
            self.observer.record(StepFailure(call_id, step, e))
            return False

    async def _broadcast(self, event: Dict[str, Any]) -> None:
        try:
            await self.broadcaster.publish(event)
        except Exception as e:
            self.observer.record(StepFailure(str(event.get("callId", "")), "broadcast", e))

    def _closing_directive(self, text: str = GENERIC_CLOSING_LINE) -> ControlDirective:
        return end_directive(text=text, language="en")

    def _markup_options(
        self, campaign: Optional[CampaignConfig], thinking_pause: bool = True
    ) -> Dict[str, Any]:
        return {
            "language": campaign.language if campaign else "en",
            "typing_sound_url": settings.typing_sound_url or None,
            "thinking_pause": thinking_pause,
        }

    @staticmethod
    def _root_url(base_url: str) -> str:
        return (base_url or settings.base_url).rstrip("/")

    def _gather_url(self, call_id: str, base_url: str) -> str:
        return f"{self._root_url(base_url)}/webhooks/voice/{call_id}/process-speech"

    def _recording_url(self, call_id: str, base_url: str) -> str:
        return f"{self._root_url(base_url)}/webhooks/voice/recording-complete?callId={call_id}"

    async def shutdown(self) -> None:
        """Cancel pending completions and drop live sessions."""
        await self.scheduler.shutdown()
        self.registry.clear()

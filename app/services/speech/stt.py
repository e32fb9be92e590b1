"""Speech-to-text service."""
import asyncio
import logging
import re
from typing import Optional
import httpx
from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.exceptions import TranscriptionError
from app.services.agent.constants import FILLER_UTTERANCES

logger = logging.getLogger(__name__)


class SpeechToTextService:
    """Service for turning caller speech into utterance text."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.http_client = http_client

    @staticmethod
    def normalize(
        speech_result: Optional[str] = None,
        unstable_result: Optional[str] = None,
        digits: Optional[str] = None,
    ) -> str:
        """
        Pick the best inline recognition result from a Twilio Gather callback.

        The final SpeechResult wins, then the last partial result, then keypad
        digits.
        """
        for candidate in (speech_result, unstable_result, digits):
            if candidate and candidate.strip():
                return re.sub(r"\s+", " ", candidate).strip()
        return ""

    @staticmethod
    def validate(text: Optional[str]) -> str:
        """Return the utterance, or an empty string when it is only noise."""
        if not text:
            return ""
        cleaned = text.strip()
        words = re.sub(r"[^\w\s]", "", cleaned.lower()).split()
        if not words or all(word in FILLER_UTTERANCES for word in words):
            return ""
        return cleaned

    async def transcribe_audio(self, audio_data: bytes, format: str = "wav") -> str:
        """
        Transcribe audio to text using OpenAI Whisper.

        Args:
            audio_data: Raw audio bytes
            format: Audio format (wav, mp3, etc.)

        Returns:
            Transcribed text
        """
        try:
            transcript = await asyncio.wait_for(
                self.client.audio.transcriptions.create(
                    model=settings.openai_transcription_model,
                    file=(f"audio.{format}", audio_data, f"audio/{format}"),
                ),
                timeout=settings.transcription_timeout_seconds,
            )
            return transcript.text
        except (OpenAIError, asyncio.TimeoutError) as e:
            raise TranscriptionError(f"Transcription failed: {type(e).__name__}: {e}") from e

    async def transcribe_recording(self, recording_url: str) -> str:
        """
        Transcribe a Twilio recording URL.

        Args:
            recording_url: URL to Twilio recording

        Returns:
            Transcribed text
        """
        try:
            if self.http_client is not None:
                response = await self._fetch(self.http_client, recording_url)
            else:
                async with httpx.AsyncClient(timeout=settings.transcription_timeout_seconds) as client:
                    response = await self._fetch(client, recording_url)
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Recording download failed: {e}") from e

        text = await self.transcribe_audio(response.content)
        logger.info(f"[STT] Whisper transcription ({len(text)} chars) for {recording_url}")
        return text

    async def _fetch(self, client: httpx.AsyncClient, recording_url: str) -> httpx.Response:
        response = await client.get(
            recording_url,
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            follow_redirects=True,
        )
        response.raise_for_status()
        return response

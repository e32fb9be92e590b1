"""Text-to-speech service."""
import asyncio
import logging
from typing import Optional
import httpx

from app.core.config import settings
from app.core.exceptions import SynthesisError
from app.services.persistence.base import VoiceSettings

logger = logging.getLogger(__name__)


class TextToSpeechService:
    """Service for converting reply text to speech with ElevenLabs."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.elevenlabs_api_key
        self.base_url = settings.elevenlabs_base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.synthesis_timeout_seconds,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=20),
        )

    async def synthesize_speech(
        self,
        text: str,
        voice_id: Optional[str] = None,
        voice_settings: Optional[VoiceSettings] = None,
        model: Optional[str] = None,
    ) -> bytes:
        """
        Synthesize speech from text.

        Args:
            text: Text to convert to speech
            voice_id: ElevenLabs voice; the configured default when omitted
            voice_settings: Stability, similarity, style and speaker boost
            model: ElevenLabs model ID (e.g. eleven_turbo_v2)

        Returns:
            Audio bytes (MP3 format)
        """
        if not text.strip():
            raise SynthesisError("Empty text provided")

        voice_id = voice_id or settings.elevenlabs_default_voice_id
        voice_settings = voice_settings or VoiceSettings()
        payload = {
            "text": text,
            "model_id": model or settings.elevenlabs_default_model,
            "voice_settings": voice_settings.model_dump(),
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }

        try:
            response = await asyncio.wait_for(
                self.http_client.post(
                    f"{self.base_url}/text-to-speech/{voice_id}",
                    headers=headers,
                    json=payload,
                ),
                timeout=settings.synthesis_timeout_seconds,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            raise SynthesisError(f"TTS request failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            detail = response.text[:200]
            if response.status_code == 429:
                detail = f"rate limit exceeded - {detail}"
            raise SynthesisError(f"ElevenLabs API error {response.status_code}: {detail}")

        if not response.content:
            raise SynthesisError("ElevenLabs returned empty audio")

        logger.debug(
            f"[TTS] Generated {len(response.content)} bytes for voice {voice_id}: '{text[:50]}'"
        )
        return response.content

    async def aclose(self) -> None:
        await self.http_client.aclose()

"""Unit tests for speech services."""
import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from app.core.config import settings
from app.core.exceptions import SynthesisError, TranscriptionError
from app.services.persistence.base import VoiceSettings
from app.services.speech.audio_store import AudioStore
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService


class TestNormalize:
    """Test picking the inline recognition result."""

    def test_speech_result_wins(self):
        assert SpeechToTextService.normalize("  hello   there ", "hell", "1") == "hello there"

    def test_falls_back_to_unstable_then_digits(self):
        assert SpeechToTextService.normalize("", "partial words", None) == "partial words"
        assert SpeechToTextService.normalize(None, "  ", "98765") == "98765"

    def test_nothing_recognized(self):
        assert SpeechToTextService.normalize() == ""


class TestValidate:
    """Test filler and empty speech filtering."""

    def test_filler_only_is_empty(self):
        assert SpeechToTextService.validate("Um... uh") == ""
        assert SpeechToTextService.validate("hmm?") == ""

    def test_real_speech_passes(self):
        assert SpeechToTextService.validate(" um, yes please ") == "um, yes please"

    def test_empty(self):
        assert SpeechToTextService.validate(None) == ""
        assert SpeechToTextService.validate("   ") == ""


class TestTranscribeRecording:
    """Test recording download and transcription."""

    @pytest.mark.asyncio
    async def test_download_and_transcribe(self):
        """Test the recording is fetched with Twilio auth and sent to Whisper."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=b"RIFF-audio")

        client = Mock()
        client.audio.transcriptions.create = AsyncMock(return_value=Mock(text="my email is a@b.co"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            service = SpeechToTextService(client=client, http_client=http_client)
            text = await service.transcribe_recording("https://api.twilio.com/rec/RE1")

        assert text == "my email is a@b.co"
        assert requests[0].headers["authorization"].startswith("Basic ")
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["file"][1] == b"RIFF-audio"

    @pytest.mark.asyncio
    async def test_download_failure_raises(self):
        """Test an HTTP error becomes a TranscriptionError."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            service = SpeechToTextService(client=Mock(), http_client=http_client)
            with pytest.raises(TranscriptionError):
                await service.transcribe_recording("https://api.twilio.com/rec/missing")


class TestSynthesizeSpeech:
    """Test ElevenLabs synthesis requests."""

    @pytest.mark.asyncio
    async def test_posts_voice_settings(self):
        """Test the campaign voice and tuning are sent."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = request.read()
            captured["key"] = request.headers["xi-api-key"]
            return httpx.Response(200, content=b"mp3-bytes")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            service = TextToSpeechService(http_client=http_client)
            audio = await service.synthesize_speech(
                "Hello there",
                voice_id="voice-123",
                voice_settings=VoiceSettings(stability=0.3),
                model="eleven_turbo_v2",
            )

        assert audio == b"mp3-bytes"
        assert captured["url"].endswith("/text-to-speech/voice-123")
        assert b'"stability":0.3' in captured["body"].replace(b" ", b"")
        assert captured["key"] == "test-elevenlabs-key"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        """Test a non-200 response raises SynthesisError."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="quota")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            service = TextToSpeechService(http_client=http_client)
            with pytest.raises(SynthesisError, match="rate limit"):
                await service.synthesize_speech("Hello")

    @pytest.mark.asyncio
    async def test_slow_synthesizer_times_out(self, monkeypatch):
        """Test a response slower than the synthesis timeout raises SynthesisError."""
        monkeypatch.setattr(settings, "synthesis_timeout_seconds", 0.05)

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.Event().wait()

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            service = TextToSpeechService(http_client=http_client)
            with pytest.raises(SynthesisError, match="TimeoutError"):
                await service.synthesize_speech("Hello")

    @pytest.mark.asyncio
    async def test_empty_text_raises(self):
        service = TextToSpeechService(http_client=Mock())
        with pytest.raises(SynthesisError):
            await service.synthesize_speech("   ")


class TestVoiceSettings:
    """Test campaign voice config parsing."""

    def test_camel_case_config(self):
        voice = VoiceSettings.from_config(
            {"stability": 0.2, "similarityBoost": 0.9, "useSpeakerBoost": False}
        )

        assert voice.stability == 0.2
        assert voice.similarity_boost == 0.9
        assert voice.use_speaker_boost is False

    def test_missing_config_uses_defaults(self):
        assert VoiceSettings.from_config(None) == VoiceSettings()


class TestAudioStore:
    """Test audio file storage."""

    def test_save_and_resolve(self, tmp_path):
        store = AudioStore(str(tmp_path), base_url="https://agent.test/")

        url = store.save("call-1", b"mp3", prefix="intro")
        filename = url.rsplit("/", 1)[1]

        assert url.startswith("https://agent.test/audio/intro_call-1_")
        assert store.path_for(filename).read_bytes() == b"mp3"

    def test_unsafe_names_rejected(self, tmp_path):
        store = AudioStore(str(tmp_path))

        assert store.path_for("../secrets.mp3") is None
        assert store.path_for("notes.txt") is None

    def test_delete(self, tmp_path):
        store = AudioStore(str(tmp_path))
        filename = store.save("call-1", b"mp3").rsplit("/", 1)[1]

        assert store.delete(filename)
        assert store.path_for(filename) is None
        assert not store.delete(filename)

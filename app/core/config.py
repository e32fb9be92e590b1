"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_default_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"

    # ElevenLabs
    elevenlabs_api_key: str
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_default_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_default_model: str = "eleven_turbo_v2"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    twilio_whatsapp_number: str = "+14155238886"

    # Database
    database_url: str

    # Public URL Twilio uses to reach webhooks and audio files
    base_url: str = ""

    # Audio
    audio_dir: str = "temp"
    audio_retention_seconds: float = 300.0
    typing_sound_url: str = ""

    # Conversation
    default_intro_line: str = "Hello, this is an AI calling agent from LabsCheck."
    history_window: int = 4
    max_conversation_turns: int = 8
    completion_delay_seconds: float = 1.0
    ended_calls_retained: int = 1000
    follow_up_message: str = (
        "Thank you for your time during our call. We'll follow up with the "
        "information discussed about LabsCheck partnerships."
    )

    # Upper bounds for external calls (seconds)
    generation_timeout_seconds: float = 15.0
    synthesis_timeout_seconds: float = 15.0
    transcription_timeout_seconds: float = 20.0
    persistence_timeout_seconds: float = 5.0
    messaging_timeout_seconds: float = 10.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()

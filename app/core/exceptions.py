"""Domain exceptions raised by external service clients."""


class VoiceAgentError(Exception):
    """Base class for voice agent errors."""


class GenerationError(VoiceAgentError):
    """Response generation failed or timed out."""


class SynthesisError(VoiceAgentError):
    """Text-to-speech synthesis failed or timed out."""


class TranscriptionError(VoiceAgentError):
    """Recording transcription failed."""


class MessagingError(VoiceAgentError):
    """Outbound message could not be delivered."""

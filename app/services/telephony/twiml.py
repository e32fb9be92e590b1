"""TwiML generation for call control."""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

# Twilio speech recognition locales for campaign language codes
LANGUAGE_LOCALES = {
    "en": "en-US",
    "hi": "hi-IN",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "pt": "pt-BR",
    "it": "it-IT",
    "ja": "ja-JP",
}

DEFAULT_VOICE = "alice"
NO_INPUT_LINE = "I didn't catch that. Please try again."


class Intent(str, Enum):
    """What the call should do after the response is played."""

    LISTEN = "listen"
    END = "end"


class ControlDirective(BaseModel):
    """Markup returned to Twilio plus what produced it."""

    intent: Intent
    markup: str
    reply_text: Optional[str] = None
    audio_url: Optional[str] = None

    @property
    def ends_call(self) -> bool:
        return self.intent is Intent.END


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def to_locale(language: Optional[str]) -> str:
    """Map a short language code to a Twilio locale; full locales pass through."""
    if not language:
        return LANGUAGE_LOCALES["en"]
    if "-" in language:
        return language
    return LANGUAGE_LOCALES.get(language.lower(), language)


def _speech_verb(
    audio_url: Optional[str], text: Optional[str], locale: str, voice: str, indent: str
) -> str:
    if audio_url:
        return f"{indent}<Play>{escape_xml(audio_url)}</Play>"
    return (
        f'{indent}<Say voice="{escape_xml(voice)}" language="{locale}">'
        f"{escape_xml(text or '')}</Say>"
    )


def _ambient_verbs(typing_sound_url: Optional[str], thinking_pause: bool) -> List[str]:
    verbs = []
    if typing_sound_url:
        verbs.append(f"    <Play>{escape_xml(typing_sound_url)}</Play>")
    if thinking_pause:
        verbs.append('    <Pause length="1"/>')
    return verbs


def build_markup(
    intent: Intent,
    *,
    audio_url: Optional[str] = None,
    text: Optional[str] = None,
    language: Optional[str] = "en",
    action_url: Optional[str] = None,
    recording_callback: Optional[str] = None,
    typing_sound_url: Optional[str] = None,
    thinking_pause: bool = False,
    voice: str = DEFAULT_VOICE,
) -> str:
    """
    Generate TwiML for one of the two call intents.

    Args:
        intent: LISTEN plays the response then gathers speech and posts it to
            action_url; END plays the response then hangs up.
        audio_url: Synthesized audio to play. Takes precedence over text.
        text: Literal text spoken with the provider voice when there is no audio.
        language: Campaign language code or Twilio locale.
        action_url: Gather callback; required for LISTEN.
        recording_callback: Where a fallback recording is posted when the
            gather hears nothing (LISTEN only).
        typing_sound_url: Ambient typing audio played before the response.
        thinking_pause: Insert a short pause before the response.
        voice: Provider voice used for literal text.

    Returns:
        TwiML XML string
    """
    if not audio_url and not text:
        raise ValueError("Either audio_url or text is required")

    locale = to_locale(language)
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
    lines.extend(_ambient_verbs(typing_sound_url, thinking_pause))

    if intent is Intent.END:
        lines.append(_speech_verb(audio_url, text, locale, voice, "    "))
        lines.append("    <Hangup/>")
    else:
        if not action_url:
            raise ValueError("action_url is required to keep listening")
        action = escape_xml(action_url)
        lines.append(
            f'    <Gather action="{action}" method="POST" input="speech" '
            f'speechTimeout="auto" language="{locale}">'
        )
        lines.append(_speech_verb(audio_url, text, locale, voice, "        "))
        lines.append("    </Gather>")
        if recording_callback:
            # No speech recognized: record the caller for server-side transcription
            lines.append(
                f'    <Record action="{escape_xml(recording_callback)}" method="POST" '
                f'maxLength="30" timeout="3" playBeep="false"/>'
            )
        lines.append(
            f'    <Say voice="{escape_xml(voice)}" language="{locale}">{NO_INPUT_LINE}</Say>'
        )
        lines.append(f"    <Redirect>{action}</Redirect>")

    lines.append("</Response>")
    return "\n".join(lines)


def listen_directive(reply_text: Optional[str] = None, **kwargs) -> ControlDirective:
    """Build a LISTEN directive; kwargs go to build_markup."""
    return ControlDirective(
        intent=Intent.LISTEN,
        markup=build_markup(Intent.LISTEN, **kwargs),
        reply_text=reply_text if reply_text is not None else kwargs.get("text"),
        audio_url=kwargs.get("audio_url"),
    )


def end_directive(reply_text: Optional[str] = None, **kwargs) -> ControlDirective:
    """Build an END directive; kwargs go to build_markup."""
    return ControlDirective(
        intent=Intent.END,
        markup=build_markup(Intent.END, **kwargs),
        reply_text=reply_text if reply_text is not None else kwargs.get("text"),
        audio_url=kwargs.get("audio_url"),
    )

"""Call termination policy."""
from app.services.agent.constants import CLOSING_PHRASES, OPT_OUT_PHRASES
from app.services.extraction.contact_info import ContactInfo


def contains_phrase(text: str, phrases: list[str]) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in phrases)


def is_opt_out(utterance: str) -> bool:
    """True when the caller explicitly asked to stop."""
    return contains_phrase(utterance, OPT_OUT_PHRASES)


def should_end_call(
    contact_info: ContactInfo,
    turn_count: int,
    reply: str,
    utterance: str,
    max_turns: int = 8,
) -> bool:
    """
    Decide whether the current turn ends the call.

    The call ends once both contact fields are known and either the
    conversation has reached max_turns or the reply is a closing line.
    A caller opt-out ends the call regardless of collected fields.
    """
    if is_opt_out(utterance):
        return True

    if not contact_info.is_complete:
        return False

    return turn_count >= max_turns or contains_phrase(reply, CLOSING_PHRASES)

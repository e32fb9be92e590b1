"""Constants for conversation flow and call termination."""

# Agent phrases that signal the conversation is wrapping up
CLOSING_PHRASES = [
    "thank you for your time",
    "goodbye",
]

# Caller phrases that end the call immediately
OPT_OUT_PHRASES = [
    "not interested",
    "hang up",
]

# Utterances treated as no speech at all
FILLER_UTTERANCES = [
    "um",
    "uh",
    "hmm",
    "mm",
    "ah",
    "er",
]

# Fixed lines spoken by the system rather than generated
GENERIC_CLOSING_LINE = "Thank you for your time. Goodbye."
SYNTHESIS_APOLOGY_LINE = (
    "I apologize, there was a technical issue. We will call you back shortly."
)
GENERATION_APOLOGY_LINE = (
    "I'm sorry, I'm having trouble right now. We will call you back shortly. Goodbye."
)
INTRO_APOLOGY_LINE = (
    "I apologize, there was a technical issue. Please try again later."
)
REPROMPT_LINE = "I'm here. Please speak when you're ready."
SUMMARY_FALLBACK = "Call completed - summary generation failed"
TECHNICAL_ISSUE_LINE = "I apologize, there was a technical issue. Thank you for your time."

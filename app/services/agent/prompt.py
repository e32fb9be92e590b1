"""Agent prompt templates."""
from typing import Optional

from app.services.extraction.contact_info import ContactInfo

SUMMARY_INSTRUCTIONS = (
    "Generate a concise call summary focusing on key points discussed and outcomes."
)


def _collection_status(contact_info: ContactInfo) -> str:
    whatsapp = contact_info.whatsapp or "NOT YET COLLECTED"
    email = contact_info.email or "NOT YET COLLECTED"
    if contact_info.is_complete:
        next_step = (
            "Both details are collected. Thank the person warmly, confirm we will "
            "follow up, and close with 'Thank you for your time. Goodbye.'"
        )
    elif contact_info.whatsapp:
        next_step = "Politely ask for their email address."
    elif contact_info.email:
        next_step = "Politely ask for their WhatsApp number."
    else:
        next_step = "Continue the conversation and ask for their WhatsApp number and email."
    return f"""CONTACT DETAILS:
- WhatsApp number: {whatsapp}
- Email: {email}
NEXT STEP: {next_step}"""


def get_system_prompt(goal_script: str, contact_info: Optional[ContactInfo] = None) -> str:
    """Generate system prompt for a campaign call."""
    contact_info = contact_info or ContactInfo()
    return f"""You are a friendly, professional voice agent on an outbound phone call.

CAMPAIGN SCRIPT:
{goal_script or "Introduce yourself and explain why you are calling."}

YOUR GOAL:
Collect the person's WhatsApp number and email address so the team can follow up.
Never ask again for a detail that has already been collected.

{_collection_status(contact_info)}

When responding:
- Keep responses short and natural (1-2 sentences max); this is spoken aloud
- Do not use lists, markdown, emojis or special characters
- If the person is not interested, thank them politely and end the call
- Read numbers back digit by digit when confirming them"""


def get_summary_prompt(conversation_text: str) -> str:
    """Generate the user prompt for a post-call summary."""
    return f"Please provide a brief summary of this call conversation:\n{conversation_text}"

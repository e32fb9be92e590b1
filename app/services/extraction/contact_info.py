"""Contact information extraction from caller speech."""
import re
from typing import Iterable, Optional
from pydantic import BaseModel

# A run of at least 10 digit/separator characters that starts and ends on a digit
PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
EMAIL_PATTERN = re.compile(r"[\w.\-]+@[\w.\-]+\.\w+")


class ContactInfo(BaseModel):
    """WhatsApp number and email collected during a call."""

    whatsapp: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.whatsapp and self.email)

    @property
    def is_empty(self) -> bool:
        return not (self.whatsapp or self.email)

    def merge(self, newer: "ContactInfo") -> "ContactInfo":
        """Combine with newly found values; a field already set is kept."""
        return ContactInfo(
            whatsapp=self.whatsapp or newer.whatsapp,
            email=self.email or newer.email,
        )


def normalize_phone(raw: str) -> str:
    """Strip everything but digits."""
    return re.sub(r"\D", "", raw)


def extract_contact_info(text: Optional[str]) -> ContactInfo:
    """Pull the first phone-like and email-like values out of text."""
    if not text:
        return ContactInfo()

    email_match = EMAIL_PATTERN.search(text)
    email = email_match.group(0) if email_match else None

    # Digits inside the email address must not be read as a phone number
    phone_text = EMAIL_PATTERN.sub(" ", text)
    phone_match = PHONE_PATTERN.search(phone_text)
    whatsapp = normalize_phone(phone_match.group(0)) if phone_match else None

    return ContactInfo(whatsapp=whatsapp, email=email)


def extract_from_transcript(texts: Iterable[str]) -> ContactInfo:
    """Run extraction over a whole conversation joined into one text."""
    return extract_contact_info(" ".join(texts))

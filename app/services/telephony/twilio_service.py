"""Twilio REST service for placing calls and sending WhatsApp follow-ups."""
import asyncio
import logging
from typing import Optional
from pydantic import BaseModel
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from app.core.config import settings

logger = logging.getLogger(__name__)


class CallInitiationResult(BaseModel):
    """Outcome of placing an outbound call."""

    success: bool
    twilio_call_sid: Optional[str] = None
    error: Optional[str] = None


class MessageResult(BaseModel):
    """Outcome of sending a message."""

    success: bool
    message_sid: Optional[str] = None
    error: Optional[str] = None


def to_whatsapp_address(number: str) -> str:
    """Format a number as a Twilio WhatsApp address."""
    if number.startswith("whatsapp:"):
        return number
    digits = number.lstrip("+")
    return f"whatsapp:+{digits}"


class TwilioService:
    """Service wrapping the Twilio REST client."""

    def __init__(self, client: Optional[TwilioClient] = None):
        self.client = client or TwilioClient(
            settings.twilio_account_sid, settings.twilio_auth_token
        )
        self.from_number = settings.twilio_phone_number
        self.whatsapp_from = to_whatsapp_address(settings.twilio_whatsapp_number)

    async def initiate_call(
        self, phone_number: str, answer_url: str, status_callback: str
    ) -> CallInitiationResult:
        """
        Place an outbound call.

        Args:
            phone_number: Destination in E.164 format
            answer_url: Webhook Twilio requests when the call is answered
            status_callback: Webhook receiving call status changes

        Returns:
            CallInitiationResult with the Twilio call SID on success
        """
        try:
            call = await asyncio.to_thread(
                self.client.calls.create,
                to=phone_number,
                from_=self.from_number,
                url=answer_url,
                method="POST",
                status_callback=status_callback,
                status_callback_event=["completed"],
                status_callback_method="POST",
            )
            logger.info(f"[TWILIO] Call placed to {phone_number} - SID: {call.sid}")
            return CallInitiationResult(success=True, twilio_call_sid=call.sid)
        except TwilioRestException as e:
            logger.error(f"[TWILIO] Call to {phone_number} failed - {e.code}: {e.msg}")
            return CallInitiationResult(success=False, error=str(e.msg))
        except Exception as e:
            logger.error(
                f"[TWILIO] Call to {phone_number} failed - "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return CallInitiationResult(success=False, error=str(e))

    async def send_whatsapp_message(self, destination: str, text: str) -> MessageResult:
        """Send a WhatsApp text message. Never raises."""
        try:
            message = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.messages.create,
                    from_=self.whatsapp_from,
                    to=to_whatsapp_address(destination),
                    body=text,
                ),
                timeout=settings.messaging_timeout_seconds,
            )
            logger.info(f"[TWILIO] WhatsApp message sent to {destination} - SID: {message.sid}")
            return MessageResult(success=True, message_sid=message.sid)
        except TwilioRestException as e:
            logger.warning(f"[TWILIO] WhatsApp to {destination} rejected - {e.code}: {e.msg}")
            return MessageResult(success=False, error=str(e.msg))
        except Exception as e:
            logger.warning(
                f"[TWILIO] WhatsApp to {destination} failed - {type(e).__name__}: {str(e)}"
            )
            return MessageResult(success=False, error=str(e) or type(e).__name__)

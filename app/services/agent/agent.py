"""LLM response generation service."""
import asyncio
import logging
from typing import Dict, List, Optional
from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.exceptions import GenerationError
from app.services.agent.prompt import SUMMARY_INSTRUCTIONS, get_summary_prompt, get_system_prompt
from app.services.extraction.contact_info import ContactInfo

logger = logging.getLogger(__name__)


class AgentService:
    """Service generating the agent's next reply with OpenAI."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def generate_response(
        self,
        utterance: str,
        goal_script: str,
        recent_history: List[Dict[str, str]],
        contact_info: Optional[ContactInfo] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Generate the next agent reply.

        Args:
            utterance: Latest caller utterance
            goal_script: Campaign script guiding the conversation
            recent_history: Bounded window of prior turns as chat messages;
                may already end with the utterance itself
            contact_info: Contact details collected so far
            model: OpenAI model ID; the configured default when omitted

        Returns:
            Reply text to speak

        Raises:
            GenerationError: The API failed, timed out or returned no text
        """
        messages = [{"role": "system", "content": get_system_prompt(goal_script, contact_info)}]
        messages.extend(recent_history)
        last = recent_history[-1] if recent_history else None
        if not last or last.get("role") != "user" or last.get("content") != utterance:
            messages.append({"role": "user", "content": utterance})

        return await self._complete(messages, model, temperature=0.7, max_tokens=150)

    async def summarize(self, conversation_text: str, model: Optional[str] = None) -> str:
        """Summarize a finished conversation."""
        messages = [
            {"role": "system", "content": SUMMARY_INSTRUCTIONS},
            {"role": "user", "content": get_summary_prompt(conversation_text)},
        ]
        return await self._complete(messages, model, temperature=0.3, max_tokens=300)

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str],
        temperature: float,
        max_tokens: int,
    ) -> str:
        model = model or settings.openai_default_model
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=settings.generation_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"{model} timed out after {settings.generation_timeout_seconds}s"
            ) from e
        except OpenAIError as e:
            raise GenerationError(f"{model} request failed: {type(e).__name__}: {e}") from e

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise GenerationError(f"{model} returned an empty reply")

        logger.info(f"[AGENT OUTPUT] Model: {model}, Reply: '{content[:200]}'")
        return content
